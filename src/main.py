import argparse
import asyncio
import json
import sys
import traceback

import cv2

from rehab_motion.log_utils import set_log_level
from rehab_motion.movement_analysis import MOVEMENT_SCORER_REGISTRY


def run_camera(args) -> int:
    from rehab_motion.assessment import AssessmentHistory
    from rehab_motion.session import AssessmentSession

    voice = None
    if args.voice:
        from rehab_motion.feedback import VoiceFeedback
        voice = VoiceFeedback()

    cap = cv2.VideoCapture(args.camera)
    if not cap.isOpened():
        print(f"Failed to open camera {args.camera}")
        return 1
    try:
        print("Initializing assessment session...")
        session = AssessmentSession(movement_type=args.movement, voice=voice, history=AssessmentHistory())
        print("Session started, press 'q' to finish.")
        assessment = asyncio.run(session.run(cap, display=True))
    except KeyboardInterrupt:
        print("\n[INFO] KeyboardInterrupt received. Exiting gracefully...")
        return 0
    finally:
        cap.release()

    if assessment is not None:
        print(json.dumps(assessment.to_dict(), indent=2, ensure_ascii=False))
    return 0


def run_video(args) -> int:
    from rehab_motion.video_analysis import VideoAnalyzer

    if not args.video:
        print("Error: --video argument is required when mode is 'video'.")
        return 1
    print("Initializing video analysis...", file=sys.stderr)
    try:
        result = VideoAnalyzer().analyze(args.video, args.movement)
    except (FileNotFoundError, ValueError) as e:
        print(str(e))
        return 1
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def main(argv=None) -> int:
    """Main entry point for the movement assessment CLI."""
    parser = argparse.ArgumentParser(description="Rehab Motion - movement quality assessment")
    parser.add_argument('--mode', type=str, choices=['camera', 'video'], default='camera', help='Run mode: camera (default) or video')
    parser.add_argument('--movement', type=str, default='deep-squat', help=f"Movement type, e.g. {', '.join(sorted(MOVEMENT_SCORER_REGISTRY))}")
    parser.add_argument('--camera', type=int, default=0, help='Camera device ID')
    parser.add_argument('--video', type=str, help='Path to the video file to analyze (required if mode=video)')
    parser.add_argument('--voice', action='store_true', help='Speak feedback cues')
    parser.add_argument('--log_level', type=str, default='info', choices=['debug', 'info', 'warning', 'error'], help='Logging level')
    args = parser.parse_args(argv)

    set_log_level(args.log_level)
    try:
        if args.mode == 'video':
            return run_video(args)
        return run_camera(args)
    except Exception as e:
        print(f"Error: {e}")
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
