"""
Template model.

Email templates with literal {{key}} placeholders in subject and body.
"""
from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from notifyhub.models.base import Base, JSONType, TimestampMixin


class Template(Base, TimestampMixin):
    """
    Email template.

    Owned by the template store; cached copies in Redis are disposable.
    """
    __tablename__ = "templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    html_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    variables: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "subject": self.subject,
            "html_content": self.html_content,
            "variables": list(self.variables or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Template(id={self.id}, name={self.name})>"
