"""Student enrollment at a branch; plans hang off it."""
from datetime import datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import Field


class Enrollment(Document):
    agency_id: Indexed(str)
    student_id: Indexed(str)
    student_name: str = ""
    student_nationality: Optional[str] = None
    college_id: str
    branch_id: Indexed(str)
    program_name: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "enrollments"
        use_state_management = True
