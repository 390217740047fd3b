# JSON output

"""Session info file for tools that need the running server's ports"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

class SessionInfo(BaseModel):
    """Pydantic model for validating the session info schema"""

    state: str
    host: str
    service_port: int
    admin_port: int
    pid: Optional[int] = None
    is_running: bool = False
    updated_at: str

def build_session_info(server_info: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce ServerLifecycle.get_server_info() to the session info schema"""
    data = {key: server_info.get(key) for key in SessionInfo.model_fields if key != "updated_at"}
    data["updated_at"] = datetime.now(timezone.utc).isoformat()
    return SessionInfo(**data).model_dump()

class JSONOutputFormatter:
    """Handles writing and reading session info files"""

    @staticmethod
    def save_to_file(data: Dict[str, Any], filepath: str, pretty: bool = True) -> None:
        """Save data to JSON file"""
        try:
            path = Path(filepath)
            path.parent.mkdir(parents=True, exist_ok=True)

            # Write then rename so readers never see a half-written file
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            with open(tmp_path, 'w') as f:
                if pretty:
                    json.dump(data, f, indent=2, default=str)
                else:
                    json.dump(data, f, default=str)
            tmp_path.replace(path)

            logger.debug(f"Session info saved to {filepath}")

        except Exception as e:
            logger.error(f"Failed to save session info to {filepath}: {str(e)}")
            raise

    @staticmethod
    def load_from_file(filepath: str) -> Dict[str, Any]:
        """Load data from JSON file"""
        try:
            with open(filepath, 'r') as f:
                return json.load(f)
        except Exception as e:
            logger.error(f"Failed to load session info from {filepath}: {str(e)}")
            raise

def validate_output_schema(data: Dict[str, Any]) -> bool:
    """Validate session info against expected schema"""
    try:
        SessionInfo(**data)
        return True
    except ValidationError as e:
        logger.error(f"Session info validation failed: {str(e)}")
        return False
