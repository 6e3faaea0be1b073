import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from fastapi import HTTPException

from ..application.ports.audit_logger import AuditLogger

logger = logging.getLogger(__name__)


@contextmanager
def audited(audit: AuditLogger, action: str, actor, appointment_id: Optional[int] = None, **details: Any):
    """Record the outcome of an actor action and turn unexpected errors into a 500."""
    label = f"{actor.role.value}:{actor.profile_id if actor.profile_id is not None else actor.user_id}"
    info: Dict[str, Any] = dict(details)
    try:
        yield info
    except HTTPException as e:
        audit.log(action, label, appointment_id, success=False, details={**info, "error": e.detail, "status_code": e.status_code})
        raise
    except Exception as e:
        logger.error(f"Error during {action}: {str(e)}", exc_info=True)
        audit.log(action, label, appointment_id, success=False, details={**info, "error": str(e)})
        raise HTTPException(status_code=500, detail=f"Failed to {action.replace('_', ' ')}")
    else:
        audit.log(action, label, appointment_id, success=True, details=info)
