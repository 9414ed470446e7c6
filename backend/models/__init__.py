"""SQLModel models package."""

from .comment import PUBLIC_STATES, Comment, CommentState
from .content import Category, Note, Page, Post
from .option import Option
from .provider_account import ProviderAccount
from .reader import OWNER_SLOT, Reader

__all__ = [
    "Reader",
    "OWNER_SLOT",
    "ProviderAccount",
    "Comment",
    "CommentState",
    "PUBLIC_STATES",
    "Option",
    "Post",
    "Note",
    "Page",
    "Category",
]
