"""
Client core: the state and actions behind the StudyDesk user interface.

The pieces are usable on their own (mirror, editor, autosave, views,
transcription, delegates) and are wired together by StudyApp.
"""

from .app import CalendarCell, StudyApp, build_app  # noqa: F401
from .editor import AutosaveCoordinator, Draft, DraftEditor, SaveStatus  # noqa: F401
from .identity import IdentitySession, StaticIdentityProvider  # noqa: F401
from .mirror import RemoteCollectionMirror  # noqa: F401
from .scheduler import AsyncioScheduler, ManualScheduler  # noqa: F401
