"""UploadState state machine for the upload lifecycle

State flow:
    DRAFT → ATTACHMENTS_ADDED → PUBLISHED

The state is derived from the persisted flags rather than stored; the
lifecycle manager enforces transitions through conditional writes.
"""

from enum import Enum
from typing import Dict, List, Optional, Sequence


class UploadState(str, Enum):
    """Upload lifecycle state

    DRAFT: Created, no attachments yet
    ATTACHMENTS_ADDED: At least one attachment, not yet published
    PUBLISHED: Visible in listings (terminal)
    """
    DRAFT = "DRAFT"
    ATTACHMENTS_ADDED = "ATTACHMENTS_ADDED"
    PUBLISHED = "PUBLISHED"


# None is the "not yet persisted" state; mail ingestion creates uploads
# directly in PUBLISHED.
ALLOWED_TRANSITIONS: Dict[Optional[UploadState], List[UploadState]] = {
    None: [UploadState.DRAFT, UploadState.PUBLISHED],
    UploadState.DRAFT: [UploadState.ATTACHMENTS_ADDED],
    UploadState.ATTACHMENTS_ADDED: [
        UploadState.ATTACHMENTS_ADDED,
        UploadState.PUBLISHED,
    ],
    UploadState.PUBLISHED: [],  # Terminal state
}


def derive_state(published: bool, attachments: Sequence[str]) -> UploadState:
    """Derive the lifecycle state from an upload's flags

    Example:
        >>> derive_state(False, [])
        <UploadState.DRAFT: 'DRAFT'>
        >>> derive_state(True, ["abc.png"])
        <UploadState.PUBLISHED: 'PUBLISHED'>
    """
    if published:
        return UploadState.PUBLISHED
    if attachments:
        return UploadState.ATTACHMENTS_ADDED
    return UploadState.DRAFT


def can_transition(from_state: Optional[UploadState], to_state: UploadState) -> bool:
    """Validate if a state transition is allowed

    Example:
        >>> can_transition(UploadState.DRAFT, UploadState.PUBLISHED)
        False
        >>> can_transition(UploadState.ATTACHMENTS_ADDED, UploadState.PUBLISHED)
        True
    """
    return to_state in ALLOWED_TRANSITIONS.get(from_state, [])
