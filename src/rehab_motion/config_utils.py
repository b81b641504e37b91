import json
import os
from typing import Any, Dict


def load_pipeline_config(config_path: str = None) -> Dict[str, Any]:
    """Load the assessment pipeline config from JSON file."""
    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "pipeline_config.json")
    with open(config_path, "r") as f:
        return json.load(f)
