from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.domain.models import Post, PostCreate, PostUpdate, UserPost, now_utc
from app.infra.db import get_engine
from app.services.errors import ConflictError, NotFoundError
from app.services.paging import PageQuery, paginate

logger = logging.getLogger(__name__)


class PostService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_post(self, session: Session, post_id: int) -> Post:
        post = session.get(Post, post_id)
        if post is None:
            raise NotFoundError("post not found")
        return post

    def _check_unique(self, session: Session, post_name: str, post_code: str, post_id: int | None) -> None:
        by_name = session.exec(select(Post).where(Post.post_name == post_name)).first()
        if by_name is not None and by_name.post_id != post_id:
            raise ConflictError(f"post name '{post_name}' already exists")
        by_code = session.exec(select(Post).where(Post.post_code == post_code)).first()
        if by_code is not None and by_code.post_id != post_id:
            raise ConflictError(f"post code '{post_code}' already exists")

    def list_posts(
        self,
        *,
        post_code: str | None = None,
        post_name: str | None = None,
        status: str | None = None,
        page: PageQuery | None = None,
    ) -> tuple[list[Post], int]:
        statement = select(Post)
        if post_code:
            statement = statement.where(col(Post.post_code).contains(post_code))
        if post_name:
            statement = statement.where(col(Post.post_name).contains(post_name))
        if status:
            statement = statement.where(Post.status == status)
        statement = statement.order_by(col(Post.post_sort), col(Post.post_id))
        with self._session() as session:
            return paginate(session, statement, page)

    def get_post(self, post_id: int) -> Post:
        with self._session() as session:
            return self._get_post(session, post_id)

    def create_post(self, payload: PostCreate, *, operator: str) -> Post:
        with self._session() as session:
            self._check_unique(session, payload.post_name, payload.post_code, None)
            post = Post(**payload.model_dump(), create_by=operator)
            session.add(post)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("post create conflict") from exc
            session.refresh(post)
            return post

    def update_post(self, payload: PostUpdate, *, operator: str) -> Post:
        with self._session() as session:
            post = self._get_post(session, payload.post_id)
            self._check_unique(session, payload.post_name, payload.post_code, payload.post_id)
            for key, value in payload.model_dump(exclude={"post_id"}).items():
                setattr(post, key, value)
            post.update_by = operator
            post.update_time = now_utc()
            session.add(post)
            session.commit()
            session.refresh(post)
            return post

    def delete_posts(self, post_ids: list[int], *, operator: str) -> None:
        with self._session() as session:
            posts = [self._get_post(session, post_id) for post_id in post_ids]
            for post in posts:
                held = session.exec(select(UserPost.user_id).where(UserPost.post_id == post.post_id)).first()
                if held is not None:
                    raise ConflictError(f"post '{post.post_name}' is assigned to users and cannot be deleted")
            for post in posts:
                session.delete(post)
            session.commit()
        logger.info("posts %s deleted by %s", post_ids, operator)
