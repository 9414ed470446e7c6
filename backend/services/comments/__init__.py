"""Comment visibility, threading and moderation services."""

from .moderation import ModerationDispatcher, get_moderation_dispatcher, set_moderation_dispatcher
from .service import (
    CommentDraft,
    CommentNode,
    RequestContext,
    build_comment_tree,
    create_comment,
    delete_comment,
    list_comments,
    set_pin,
    set_whisper,
    update_comment_text,
    viewer_from_claims,
)
from .spam import SpamClassifier, SpamVerdict, extract_json
from .thread_keys import compute_key
from .visibility import ANONYMOUS, Viewer, build_visibility_filter

__all__ = [
    "ANONYMOUS",
    "CommentDraft",
    "CommentNode",
    "ModerationDispatcher",
    "RequestContext",
    "SpamClassifier",
    "SpamVerdict",
    "Viewer",
    "build_comment_tree",
    "build_visibility_filter",
    "compute_key",
    "create_comment",
    "delete_comment",
    "extract_json",
    "get_moderation_dispatcher",
    "list_comments",
    "set_moderation_dispatcher",
    "set_pin",
    "set_whisper",
    "update_comment_text",
    "viewer_from_claims",
]
