"""
公開コメントのツリー取得

トップレベル -> 返信 -> 返信への返信 の 3 階層まで。
それより深い返信は返さない。
"""
from collections import defaultdict
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Comment
from .serializers import serialize_comment

MAX_REPLY_DEPTH = 2


def serialize_public_comment(comment: Comment) -> Dict[str, Any]:
    data = serialize_comment(comment)
    # メールアドレスは公開しない
    data.pop("email", None)
    return data


async def fetch_comment_tree(db: AsyncSession, content_id: int) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(Comment)
        .where(Comment.content_id == content_id, Comment.status == "APPROVED")
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    comments = result.scalars().all()

    children: Dict[int, List[Comment]] = defaultdict(list)
    roots: List[Comment] = []
    for comment in comments:
        if comment.parent_id is None:
            roots.append(comment)
        else:
            children[comment.parent_id].append(comment)

    def build(comment: Comment, depth: int) -> Dict[str, Any]:
        node = serialize_public_comment(comment)
        if depth < MAX_REPLY_DEPTH:
            node["replies"] = [build(reply, depth + 1) for reply in children.get(comment.id, [])]
        return node

    # トップレベルは新しい順、返信は古い順
    roots.sort(key=lambda c: (c.created_at, c.id), reverse=True)
    return [build(root, 0) for root in roots]
