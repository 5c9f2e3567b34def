from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from .. import db
from ..models.db_models import Comment, Post, PostImage, Repost, Topic, User
from . import notifications_service


def _with_relations(query):
    return query.options(
        selectinload(Post.author),
        selectinload(Post.topic),
        selectinload(Post.images),
        selectinload(Post.likes),
        selectinload(Post.reposts),
        selectinload(Post.comments),
    )


def get_posts(topic_id=None, author_id=None):
    """Newest-first posts with the relations the feed renders."""
    query = _with_relations(Post.query)
    if topic_id is not None:
        query = query.filter(Post.topic_id == topic_id)
    if author_id is not None:
        query = query.filter(Post.author_id == author_id)
    return query.order_by(Post.created_at.desc(), Post.id.desc()).all()


def get_post_by_id(post_id):
    return _with_relations(Post.query).filter(Post.id == post_id).first()


def get_top_level_comments(post):
    return (
        Comment.query.filter_by(post_id=post.id, parent_id=None)
        .options(selectinload(Comment.author), selectinload(Comment.replies))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .all()
    )


def post_detail_dict(post):
    data = post.to_dict()
    data["comments"] = [
        comment.to_dict(include_replies=True)
        for comment in get_top_level_comments(post)
    ]
    return data


def create_post(content, author_id, title=None, images=None, topic_id=None):
    post = Post(
        title=title or None,
        content=content,
        author_id=author_id,
        topic_id=topic_id,
    )
    for position, url in enumerate(images or []):
        post.images.append(PostImage(url=url, position=position))
    db.session.add(post)
    db.session.commit()
    return post


def update_post(post, content, title=None):
    post.content = content
    post.title = title or None
    db.session.commit()
    return post


def delete_post(post):
    db.session.delete(post)
    db.session.commit()


def search_posts(query_text):
    pattern = f"%{query_text}%"
    return (
        _with_relations(Post.query)
        .filter(or_(Post.title.ilike(pattern), Post.content.ilike(pattern)))
        .order_by(Post.created_at.desc(), Post.id.desc())
        .all()
    )


def search_users(query_text, limit=10):
    return (
        User.query.filter(User.name.ilike(f"%{query_text}%"), User.banned.is_(False))
        .order_by(User.created_at.desc())
        .limit(limit)
        .all()
    )


def search_topics(query_text=None, limit=20):
    post_count = db.func.count(Post.id)
    query = (
        db.session.query(Topic)
        .outerjoin(Post, Post.topic_id == Topic.id)
        .group_by(Topic.id)
    )
    if query_text:
        query = query.filter(Topic.name.contains(query_text))
    return query.order_by(post_count.desc(), Topic.name.asc()).limit(limit).all()


def find_reply_target(post, parent_id):
    """The comment being replied to, or None when it is missing or on another post."""
    if parent_id is None:
        return None
    comment = db.session.get(Comment, parent_id)
    if comment is None or comment.post_id != post.id:
        return None
    return comment


def create_comment(post, author_id, content, replied_to=None):
    """
    Stores a comment and its reply notification in one commit.

    Replies nest one level, so a reply to a reply is filed under the
    top-level comment while the notification still goes to the author of the
    comment actually replied to.
    """
    parent_id = None
    if replied_to is not None:
        parent_id = replied_to.parent_id or replied_to.id

    comment = Comment(
        content=content, author_id=author_id, post_id=post.id, parent_id=parent_id
    )
    db.session.add(comment)
    db.session.flush()
    notifications_service.notify_comment_created(comment, post, replied_to)
    db.session.commit()
    return comment


def toggle_repost(user, post):
    """Returns (reposted, repost); repost is None when an existing one was removed."""
    existing = Repost.query.filter_by(user_id=user.id, post_id=post.id).first()
    if existing:
        db.session.delete(existing)
        db.session.commit()
        return False, None

    repost = Repost(user_id=user.id, post_id=post.id)
    db.session.add(repost)
    db.session.commit()
    return True, repost
