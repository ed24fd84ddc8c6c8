"""Builders for the dashboard's write actions and the reads they invalidate."""

from pathlib import Path
from typing import Any, BinaryIO, Dict, Literal, Optional, Union

from adminsync.cache.keys import match_entity, match_lists, match_resource
from adminsync.mutations.dispatcher import MutationAction
from adminsync.resources.catalog import (
    ARTICLES,
    DISPUTES,
    FLAGS,
    GROUPS,
    MODERATION_REPORTS,
    NOTIFICATIONS,
    USERS,
)

ResolutionAction = Literal["refund", "reject", "other"]

MODERATION_BASE = "/api/admin/moderation/reports"


def review_report(report_id: str) -> MutationAction:
    return MutationAction(
        resource=MODERATION_REPORTS.name,
        method="POST",
        path=f"{MODERATION_BASE}/{report_id}/review",
        body={},
        invalidates=[match_resource(MODERATION_REPORTS.name)],
        description=f"mark report {report_id} as reviewed",
    )


def delete_reported_message(report_id: str) -> MutationAction:
    """Delete the message a report points at (the report is resolved with it)."""
    return MutationAction(
        resource=MODERATION_REPORTS.name,
        method="DELETE",
        path=f"{MODERATION_BASE}/{report_id}/message",
        invalidates=[match_resource(MODERATION_REPORTS.name)],
        description=f"delete message reported in {report_id}",
    )


def resolve_dispute(dispute_id: str, action: ResolutionAction, notes: str) -> MutationAction:
    if action not in ("refund", "reject", "other"):
        raise ValueError(f"Invalid dispute resolution action: {action}")
    return MutationAction(
        resource=DISPUTES.name,
        method="POST",
        path=f"{DISPUTES.detail_path(dispute_id)}/resolve",
        body={"action": action, "notes": notes},
        invalidates=[match_lists(DISPUTES.name), match_entity(DISPUTES.name, dispute_id)],
        description=f"resolve dispute {dispute_id} ({action})",
    )


def delete_user(user_id: str) -> MutationAction:
    return MutationAction(
        resource=USERS.name,
        method="DELETE",
        path=USERS.detail_path(user_id),
        invalidates=[match_lists(USERS.name), match_entity(USERS.name, user_id)],
        description=f"delete user {user_id}",
    )


def create_article(data: Dict[str, Any]) -> MutationAction:
    return MutationAction(
        resource=ARTICLES.name,
        method="POST",
        path=f"{ARTICLES.path}/create",
        body=data,
        invalidates=[match_lists(ARTICLES.name)],
        description="create article",
    )


def edit_article(article_id: str, data: Dict[str, Any]) -> MutationAction:
    return MutationAction(
        resource=ARTICLES.name,
        method="PUT",
        path=f"{ARTICLES.path}/edit/{article_id}",
        body=data,
        invalidates=[match_lists(ARTICLES.name), match_entity(ARTICLES.name, article_id)],
        description=f"edit article {article_id}",
    )


def delete_article(article_id: str) -> MutationAction:
    return MutationAction(
        resource=ARTICLES.name,
        method="DELETE",
        path=ARTICLES.detail_path(article_id),
        invalidates=[match_lists(ARTICLES.name), match_entity(ARTICLES.name, article_id)],
        description=f"delete article {article_id}",
    )


def _file_part(image: Union[Path, BinaryIO, bytes], filename: Optional[str]) -> tuple:
    if isinstance(image, Path):
        return (filename or image.name, image.read_bytes())
    return (filename or "image", image)


def upload_article_image(image: Union[Path, BinaryIO, bytes], filename: Optional[str] = None) -> MutationAction:
    """Multipart upload; no Content-Type header so the boundary is generated."""
    return MutationAction(
        resource=ARTICLES.name,
        method="POST",
        path=f"{ARTICLES.path}/upload-image",
        files={"image": _file_part(image, filename)},
        description="upload article image",
    )


def remove_article_image(image_url: str) -> MutationAction:
    return MutationAction(
        resource=ARTICLES.name,
        method="POST",
        path=f"{ARTICLES.path}/remove-image",
        body={"imageUrl": image_url},
        description="remove article image",
    )


def create_group(data: Dict[str, Any]) -> MutationAction:
    return MutationAction(
        resource=GROUPS.name,
        method="POST",
        path=f"{GROUPS.path}/create",
        body=data,
        invalidates=[match_lists(GROUPS.name)],
        description="create support group",
    )


def edit_group(group_id: str, data: Dict[str, Any]) -> MutationAction:
    return MutationAction(
        resource=GROUPS.name,
        method="PUT",
        path=GROUPS.detail_path(group_id),
        body=data,
        invalidates=[match_lists(GROUPS.name), match_entity(GROUPS.name, group_id)],
        description=f"edit support group {group_id}",
    )


def delete_group(group_id: str) -> MutationAction:
    return MutationAction(
        resource=GROUPS.name,
        method="DELETE",
        path=GROUPS.detail_path(group_id),
        invalidates=[match_lists(GROUPS.name), match_entity(GROUPS.name, group_id)],
        description=f"delete support group {group_id}",
    )


def upload_group_image(
    group_id: str,
    image: Union[Path, BinaryIO, bytes],
    filename: Optional[str] = None,
) -> MutationAction:
    return MutationAction(
        resource=GROUPS.name,
        method="POST",
        path=f"{GROUPS.detail_path(group_id)}/upload-image",
        files={"image": _file_part(image, filename)},
        invalidates=[match_lists(GROUPS.name), match_entity(GROUPS.name, group_id)],
        description=f"upload image for support group {group_id}",
    )


def mark_notification_read(notification_id: str) -> MutationAction:
    return MutationAction(
        resource=NOTIFICATIONS.name,
        method="PATCH",
        path=f"/api/notifications/{notification_id}/read",
        invalidates=[match_resource(NOTIFICATIONS.name)],
        description=f"mark notification {notification_id} read",
    )


def review_flag(flag_id: str, admin_note: str, send_email: bool = False) -> MutationAction:
    return MutationAction(
        resource=FLAGS.name,
        method="POST",
        path=f"{FLAGS.path}/review",
        body={"flagId": flag_id, "sendEmail": send_email, "adminNote": admin_note},
        invalidates=[match_resource(FLAGS.name)],
        description=f"review flag {flag_id}",
    )
