"""
System API models.
"""

from typing import Dict, List

from pydantic import BaseModel


class SystemStatus(BaseModel):
    """Process health snapshot"""

    status: str
    uptime: float
    memory_usage: Dict[str, float]
    supported_formats: List[str]
