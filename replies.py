from dataclasses import dataclass, field

from utils import new_id, timestamp


@dataclass(slots=True)
class Reply:
    text: str
    secret_hash: str
    reply_id: str = field(default_factory=new_id)
    created_on: float = field(default_factory=timestamp)
    reported: bool = False

    def __str__(self) -> str:
        reported_marker = " [REPORTED]" if self.reported else ""
        return f"Reply {self.reply_id}: {self.text[:50]}{reported_marker}"
