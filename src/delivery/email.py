"""
Local email outbox.

Rendered messages are wrapped into student and teacher emails and, when an
outbox directory is configured, written there as uniquely named text files.
Nothing is sent over the network.
"""

import html
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from src.core.models import Student
from src.shared.config import settings
from src.shared.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
MAX_ATTEMPTS = 5


@dataclass(frozen=True)
class EmailContent:
    """A rendered email ready for delivery."""
    to: str
    subject: str
    text: str
    html: str


def _to_html(text: str) -> str:
    return html.escape(text).replace("\n", "<br />")


def build_student_email(student: Student, message: str) -> EmailContent:
    """Wrap a rendered student message in a personal email."""
    body = message.strip()
    closing = "You can do this. Pick one focus to try this week and build from there."
    text = "\n".join([
        f"Hi {student.name},",
        "",
        "Here is a supportive summary of your recent progress, plus a few next steps:",
        "",
        body,
        "",
        closing,
        "Your Educational Assistant",
    ])
    markup = (
        f"<p>Hi {html.escape(student.name)},</p>"
        "<p>Here is a supportive summary of your recent progress, plus a few next steps:</p>"
        f"<p>{_to_html(body)}</p>"
        f"<p>{closing}<br />Your Educational Assistant</p>"
    )
    return EmailContent(
        to=student.email,
        subject=f"Your learning update and next steps, {student.name}",
        text=text,
        html=markup,
    )


def build_class_email(teacher_email: str, summary: str) -> EmailContent:
    """Wrap the rendered class summary in an email to the teacher."""
    return EmailContent(
        to=teacher_email,
        subject="Class performance summary",
        text=f"Hello,\n\n{summary}\n\nBest,\nEducational Assistant",
        html=f"<p>Hello,</p><p>{_to_html(summary)}</p><p>Best,<br />Educational Assistant</p>",
    )


class EmailOutbox:
    """Writes emails to a local directory, or only logs them when none is set."""

    def __init__(self, outbox_dir: Optional[Path] = None, sender: Optional[str] = None):
        self.outbox_dir = Path(outbox_dir) if outbox_dir else None
        self.sender = sender or settings.pipeline.email_from

    def send(self, email: EmailContent) -> Optional[Path]:
        """
        Deliver an email to the outbox.

        Args:
            email: Email to deliver

        Returns:
            Path of the written file, or None when no outbox directory is set

        Raises:
            OSError: If the file cannot be written
        """
        logger.info(f"Local email generated for {email.to}: {email.subject}")
        logger.debug(f"Local email content: {email.text}")

        if self.outbox_dir is None:
            return None

        self.outbox_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        base_name = f"{stamp}-{_UNSAFE_CHARS.sub('_', email.to)}"
        contents = "\n".join([
            f"From: {self.sender}",
            f"To: {email.to}",
            f"Subject: {email.subject}",
            "",
            email.text,
            "",
        ])

        for _ in range(MAX_ATTEMPTS):
            path = self.outbox_dir / f"{base_name}-{uuid.uuid4()}.txt"
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(contents)
            except FileExistsError:
                continue
            logger.info(f"Local email saved to {path}")
            return path

        raise OSError(f"Could not create a unique email file in {self.outbox_dir}")
