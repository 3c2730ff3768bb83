"""
content.py — Content pieces and composite posts.

A piece is one author's text. A post is an ordered list of piece ids;
a piece belongs to at most one post. Deleting a post's last piece
deletes the post as well, and the caller is told so it can drop the
post's map marker.
"""

import logging
from typing import NamedTuple, Optional

from rendezvous.core.errors import PieceAuthorMismatchError, PieceNotFoundError, PostNotFoundError
from rendezvous.core.store import RECENT_FIRST, DocCollection, to_object_id

logger = logging.getLogger(__name__)


class PieceDeletion(NamedTuple):
    post_id: Optional[object]  # post that held the piece, if any
    post_deleted: bool


class ContentStore:
    def __init__(self, db) -> None:
        self.posts = DocCollection(db, "posts")
        self.pieces = DocCollection(db, "post_pieces")

    # ── Pieces ────────────────────────────────────────────────────────────────

    async def create_piece(self, author: str, content: str):
        return await self.pieces.create_one({"author": author, "content": content})

    async def get_piece(self, piece_id) -> dict:
        pid = to_object_id(piece_id)
        piece = await self.pieces.read_one({"_id": pid})
        if piece is None:
            raise PieceNotFoundError(piece=pid)
        return piece

    async def assert_author_of_piece(self, user: str, piece_id) -> dict:
        piece = await self.get_piece(piece_id)
        if piece["author"] != user:
            raise PieceAuthorMismatchError(user=user, piece=piece["_id"])
        return piece

    async def update_piece(self, piece_id, content: str) -> None:
        pid = to_object_id(piece_id)
        if not await self.pieces.update_one_with_operators({"_id": pid}, {"$set": {"content": content}}):
            raise PieceNotFoundError(piece=pid)

    async def delete_piece(self, piece_id) -> PieceDeletion:
        """
        Delete a piece, detaching it from its post. An emptied post is
        deleted too. The piece record is always removed.
        """
        pid = to_object_id(piece_id)
        post = await self.posts.find_one_and_update({"pieces": pid}, {"$pull": {"pieces": pid}})
        post_deleted = False
        if post is not None and not post["pieces"]:
            post_deleted = bool(await self.posts.delete_one({"_id": post["_id"], "pieces": []}))

        await self.pieces.delete_one({"_id": pid})
        if post_deleted:
            logger.info("Piece %s deleted along with post %s", pid, post["_id"])
        return PieceDeletion(post["_id"] if post else None, post_deleted)

    # ── Posts ─────────────────────────────────────────────────────────────────

    async def assemble(self, piece_ids: list) -> dict:
        """Create a post from *piece_ids*, in the order given."""
        post_id = await self.posts.create_one({"pieces": list(piece_ids)})
        return await self.posts.read_one({"_id": post_id})

    async def create_single(self, author: str, content: str) -> dict:
        piece_id = await self.create_piece(author, content)
        return await self.assemble([piece_id])

    async def get_post(self, post_id) -> dict:
        oid = to_object_id(post_id)
        post = await self.posts.read_one({"_id": oid})
        if post is None:
            raise PostNotFoundError(post=oid)
        return post

    async def get_posts(self, query: Optional[dict] = None) -> list[dict]:
        return await self.posts.read_many(query or {}, sort=RECENT_FIRST)

    async def posts_by_ids(self, ids: list) -> list[dict]:
        docs = await self.posts.read_many({"_id": {"$in": list(ids)}})
        by_id = {doc["_id"]: doc for doc in docs}
        return [by_id[i] for i in ids if i in by_id]

    async def by_author(self, author: str) -> list[dict]:
        """Posts containing at least one piece by *author*."""
        pieces = await self.pieces.read_many({"author": author})
        if not pieces:
            return []
        return await self.get_posts({"pieces": {"$in": [p["_id"] for p in pieces]}})

    async def resolve(self, posts: list[dict]) -> list[dict]:
        """Copies of *posts* with piece ids replaced by piece documents (None if gone)."""
        piece_ids = [pid for post in posts for pid in post["pieces"]]
        pieces = await self.pieces.read_many({"_id": {"$in": piece_ids}}) if piece_ids else []
        id_to_piece = {p["_id"]: p for p in pieces}
        return [
            {**post, "pieces": [id_to_piece.get(pid) for pid in post["pieces"]], "piece_ids": post["pieces"]}
            for post in posts
        ]
