"""
Public representations of stored resources.

Namespaced ids are cut back to their last segment with the parents exposed
as separate fields; secrets (password and token hashes) never leave here.
"""
import base64
from typing import Any, Dict, Iterable, List, Optional

from mbee.db import models
from mbee.db.repositories.webhooks import MASKED_PASSWORD
from mbee.utils.ids import last_segment, parse_id
from mbee.utils.role_permissions import role_to_permission_list


def _extensions(obj) -> Dict[str, Any]:
    return {
        "custom": obj.custom or {},
        "created_at": obj.created_at,
        "created_by": obj.created_by,
        "updated_at": obj.updated_at,
        "last_modified_by": obj.last_modified_by,
        "archived": bool(obj.archived),
        "archived_at": obj.archived_at,
        "archived_by": obj.archived_by,
    }


def permissions_map(memberships: Iterable) -> Dict[str, List[str]]:
    return {m.user_id: role_to_permission_list(m.role) for m in memberships}


def user_public(user: models.User) -> Dict[str, Any]:
    data = {
        "username": user.username,
        "email": user.email,
        "fname": user.fname,
        "lname": user.lname,
        "preferred_name": user.preferred_name,
        "admin": bool(user.is_admin),
        "provider": user.provider,
    }
    data.update(_extensions(user))
    return data


def org_public(org: models.Organization, memberships: Iterable) -> Dict[str, Any]:
    data = {
        "id": org.id,
        "name": org.name,
        "permissions": permissions_map(memberships),
    }
    data.update(_extensions(org))
    return data


def project_public(project: models.Project, memberships: Iterable) -> Dict[str, Any]:
    data = {
        "id": last_segment(project.id),
        "org": project.organization_id,
        "name": project.name,
        "visibility": project.visibility,
        "permissions": permissions_map(memberships),
    }
    data.update(_extensions(project))
    return data


def branch_public(branch: models.Branch) -> Dict[str, Any]:
    org_id, project_id, branch_id = parse_id(branch.id)
    data = {
        "id": branch_id,
        "org": org_id,
        "project": project_id,
        "name": branch.name,
        "source": last_segment(branch.source_id),
        "tag": bool(branch.tag),
    }
    data.update(_extensions(branch))
    return data


def element_public(elem: models.Element, contains: Optional[List[str]] = None) -> Dict[str, Any]:
    org_id, project_id, branch_id = parse_id(elem.id)[:3]
    data = {
        "id": last_segment(elem.id),
        "org": org_id,
        "project": project_id,
        "branch": branch_id,
        "name": elem.name,
        "documentation": elem.documentation,
        "type": elem.element_type,
        "parent": last_segment(elem.parent_id),
        "source": last_segment(elem.source_id),
        "target": last_segment(elem.target_id),
        "contains": [last_segment(c) for c in (contains or [])],
    }
    data.update(_extensions(elem))
    return data


def encode_webhook_id(webhook_id) -> str:
    return base64.urlsafe_b64encode(str(webhook_id).encode("utf-8")).decode("ascii")


def _mask_responses(responses: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, Any]]]:
    if responses is None:
        return None
    masked = []
    for response in responses:
        item = dict(response)
        if item.get("auth"):
            item["auth"] = {"username": item["auth"].get("username"), "password": MASKED_PASSWORD}
        masked.append(item)
    return masked


def webhook_public(webhook: models.Webhook) -> Dict[str, Any]:
    data = {
        "id": str(webhook.id),
        "type": webhook.webhook_type,
        "name": webhook.name,
        "description": webhook.description,
        "triggers": list(webhook.triggers or []),
        "level": webhook.level,
        "reference": {
            "org": webhook.organization_id,
            "project": last_segment(webhook.project_id),
            "branch": last_segment(webhook.branch_id),
        },
    }
    if webhook.webhook_type == "Outgoing":
        data["responses"] = _mask_responses(webhook.responses)
    else:
        data["token_location"] = webhook.token_location
        data["url"] = f"/webhooks/trigger/{encode_webhook_id(webhook.id)}"
    data.update(_extensions(webhook))
    return data


def artifact_public(artifact: models.Artifact, versions: Iterable[models.ArtifactVersion]) -> Dict[str, Any]:
    org_id, project_id, artifact_id = parse_id(artifact.id)
    history = [
        {"version": v.number, "hash": v.hash, "size": v.size, "user": v.created_by, "updated_on": v.created_at}
        for v in versions
    ]
    data = {
        "id": artifact_id,
        "org": org_id,
        "project": project_id,
        "filename": artifact.filename,
        "content_type": artifact.content_type,
        "description": artifact.description,
        "size": history[-1]["size"] if history else 0,
        "hash": history[-1]["hash"] if history else None,
        "history": history,
    }
    data.update(_extensions(artifact))
    return data
