"""
Field-level comments.

A comment targets one field of a project in one period (``field_reference``
such as ``keyRisks`` or ``benefits.fteSavings.details``). Replies nest one
level deep through ``parent_comment_id``.
"""

from datetime import datetime, timezone

from monthly_updates.models import db
from monthly_updates.models.period import guard_period_scoped_writes
from monthly_updates.utils.helpers import iso


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id = db.Column(
        db.Integer,
        db.ForeignKey("reporting_periods.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_reference = db.Column(db.String(100), nullable=False)
    parent_comment_id = db.Column(
        db.Integer,
        db.ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    author_name = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    replies = db.relationship(
        "Comment",
        backref=db.backref("parent", remote_side=[id]),
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Comment.created_at",
    )

    __table_args__ = (
        db.Index("ix_comments_project_period_field", "project_id", "period_id", "field_reference"),
    )

    def to_dict(self, include_replies: bool = False) -> dict:
        data = {
            "id": self.id,
            "projectId": self.project_id,
            "periodId": self.period_id,
            "fieldReference": self.field_reference,
            "parentCommentId": self.parent_comment_id,
            "authorName": self.author_name,
            "content": self.content,
            "isResolved": bool(self.is_resolved),
            "resolvedAt": iso(self.resolved_at),
            "resolvedBy": self.resolved_by,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
        if include_replies:
            data["replies"] = [r.to_dict() for r in self.replies]
        return data

    def __repr__(self) -> str:
        return f"<Comment {self.id} on {self.field_reference}>"


guard_period_scoped_writes(Comment)
