"""
Comment Tree Builder — flat comment rows → one level of reply threads.

A comment is placed under its parent only when the parent is present in the
input, belongs to the same task and is itself top-level. Everything else is
emitted as top-level: orphans from a partial page, self-references, and
replies to replies (threads are one level deep; deeper chains are flattened).

Order is preserved: top-level entries and each replies list follow the
input order. Every input comment appears exactly once in the output.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from taskpanel.records.comment import Comment, CommentThread


def _parent_in(comment: Comment, by_id: Dict[str, Comment]) -> Optional[Comment]:
    """The comment's parent when it is present, distinct and on the same task."""
    parent_id = comment.parent_id
    if parent_id is None or parent_id == comment.id:
        return None
    parent = by_id.get(parent_id)
    if parent is None or parent.task_id != comment.task_id:
        return None
    return parent


def _threads_under(comment: Comment, by_id: Dict[str, Comment]) -> bool:
    parent = _parent_in(comment, by_id)
    # Parent must itself be top-level: grandchildren are not nested
    return parent is not None and _parent_in(parent, by_id) is None


def build_comment_tree(comments: Sequence[Comment]) -> List[CommentThread]:
    """
    Group comments into top-level threads with their direct replies.

    Never raises; an empty input gives an empty list.
    """
    by_id: Dict[str, Comment] = {}
    for c in comments:
        by_id.setdefault(c.id, c)

    replies: Dict[str, List[Comment]] = {}
    top_level: List[Comment] = []
    seen = set()
    for c in comments:
        if c.id in seen:
            continue
        seen.add(c.id)
        if _threads_under(c, by_id):
            replies.setdefault(c.parent_id, []).append(c)
        else:
            top_level.append(c)

    return [
        CommentThread.model_validate({
            **c.model_dump(),
            "replies": replies.get(c.id, []),
        })
        for c in top_level
    ]


def flatten_tree(tree: Sequence[CommentThread]) -> List[Comment]:
    """Inverse walk: every comment in the tree, threads before their replies."""
    flat: List[Comment] = []
    for thread in tree:
        flat.append(Comment.model_validate(thread.model_dump(exclude={"replies"})))
        flat.extend(thread.replies)
    return flat


def count_comments(tree: Sequence[CommentThread], include_deleted: bool = True) -> int:
    total = 0
    for thread in tree:
        for c in (thread, *thread.replies):
            if include_deleted or not c.is_deleted:
                total += 1
    return total
