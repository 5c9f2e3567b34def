from flask import (
    render_template,
    request,
    redirect,
    url_for,
    flash,
    send_from_directory,
    abort,
    make_response,
    Blueprint,
    current_app,
)
from flask_login import current_user, login_user, logout_user
from sqlalchemy.exc import IntegrityError

from .. import db
from ..models.db_models import POST_VIEW_MODES, Comment, Post, Topic, User
from ..services import notifications_service, posts_service, users_service
from ..services.uploads_service import UploadError, save_image_upload
from ..services.users_service import ProfileError
from ..services.view_tracker import apply_view_cookie, track_view
from .auth import authenticate
from .utils import (
    admin_page_required,
    extract_headings,
    login_required,
    plain_excerpt,
    render_markdown,
)

UPLOAD_CACHE_SECONDS = 60 * 60 * 24 * 365

core_bp = Blueprint(
    "core", __name__, template_folder="../../templates", static_folder="../../static"
)


@core_bp.app_template_filter("markdown")
def markdown_filter(value):
    return render_markdown(value)


@core_bp.app_template_filter("excerpt")
def excerpt_filter(value, length=160):
    return plain_excerpt(value, length)


@core_bp.app_context_processor
def inject_unread_count():
    if current_user.is_authenticated:
        return {"unread_count": notifications_service.get_unread_count(current_user)}
    return {"unread_count": 0}


def _viewer_post_view_mode():
    if current_user.is_authenticated:
        return current_user.post_view_mode or "both"
    return "both"


@core_bp.route("/")
def index():
    posts = posts_service.get_posts()
    topics = posts_service.search_topics(limit=10)
    return render_template(
        "index.html",
        posts=posts,
        topics=topics,
        post_view_mode=_viewer_post_view_mode(),
    )


@core_bp.route("/post/<int:post_id>")
def view_post(post_id):
    post = posts_service.get_post_by_id(post_id)
    if not post:
        abort(404)

    cookie = track_view(post.id)
    if cookie:
        db.session.refresh(post)

    headings = extract_headings(post.content)
    response = make_response(
        render_template(
            "view_post.html",
            post=post,
            body_html=render_markdown(post.content, headings),
            headings=headings,
            comments=posts_service.get_top_level_comments(post),
        )
    )
    return apply_view_cookie(response, cookie)


@core_bp.route("/topic/<int:topic_id>")
def view_topic(topic_id):
    topic = db.session.get(Topic, topic_id)
    if not topic:
        abort(404)
    return render_template(
        "topic.html",
        topic=topic,
        posts=posts_service.get_posts(topic_id=topic.id),
        post_view_mode=_viewer_post_view_mode(),
    )


@core_bp.route("/user/<int:user_id>")
def user_profile(user_id):
    user = db.session.get(User, user_id)
    if not user:
        abort(404)
    return render_template(
        "user_profile.html",
        user=user,
        stats=user.get_stats(),
        posts=posts_service.get_posts(author_id=user.id),
        post_view_mode=_viewer_post_view_mode(),
    )


@core_bp.route("/search")
def search():
    query_text = request.args.get("q", "").strip()
    posts, users = [], []
    if query_text:
        posts = posts_service.search_posts(query_text)
        users = posts_service.search_users(query_text)
    return render_template("search.html", query=query_text, posts=posts, users=users)


@core_bp.route("/notifications")
@login_required
def notifications():
    return render_template(
        "notifications.html",
        notifications=notifications_service.get_recent_notifications(current_user),
    )


def _redirect_back(default):
    next_page = request.form.get("next")
    if next_page and next_page.startswith("/") and not next_page.startswith("//"):
        return redirect(next_page)
    return redirect(default)


@core_bp.route("/post/create", methods=["GET", "POST"])
@login_required
def create_post():
    topics = posts_service.search_topics(limit=None)
    if request.method == "POST":
        title = request.form.get("title", "").strip()
        content = request.form.get("content", "")
        topic_id = request.form.get("topic_id", type=int)

        if not content.strip():
            flash("Post content cannot be empty.", "warning")
            return render_template("create_post.html", topics=topics, form=request.form), 400
        if topic_id is not None and db.session.get(Topic, topic_id) is None:
            flash("That topic does not exist.", "warning")
            return render_template("create_post.html", topics=topics, form=request.form), 400

        images = []
        for file_storage in request.files.getlist("images"):
            if not file_storage.filename:
                continue
            try:
                images.append(save_image_upload(file_storage))
            except UploadError as e:
                flash(str(e), "danger")
                return (
                    render_template("create_post.html", topics=topics, form=request.form),
                    400,
                )

        try:
            post = posts_service.create_post(
                content=content,
                author_id=current_user.id,
                title=title or None,
                images=images,
                topic_id=topic_id,
            )
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Error creating post for user {current_user.id}: {e}")
            flash("Could not create the post. Please try again.", "danger")
            return render_template("create_post.html", topics=topics, form=request.form), 500

        current_app.logger.info(f"User {current_user.id} created post {post.id}")
        flash("Post created successfully!", "success")
        return redirect(url_for("core.view_post", post_id=post.id))
    return render_template("create_post.html", topics=topics, form={})


@core_bp.route("/post/<int:post_id>/delete", methods=["POST"])
@login_required
def delete_post(post_id):
    post = db.get_or_404(Post, post_id)
    if not current_user.can_modify(post.author_id):
        flash("You are not authorized to delete this post.", "danger")
        return redirect(url_for("core.view_post", post_id=post_id))
    posts_service.delete_post(post)
    current_app.logger.info(f"User {current_user.id} deleted post {post_id}")
    flash("Post deleted successfully!", "success")
    return redirect(url_for("core.index"))


@core_bp.route("/post/<int:post_id>/comment", methods=["POST"])
@login_required
def add_comment(post_id):
    post = db.get_or_404(Post, post_id)
    content = request.form.get("content", "")
    post_url = url_for("core.view_post", post_id=post.id)
    if not content.strip():
        flash("Comment content cannot be empty!", "warning")
        return redirect(post_url)

    replied_to = None
    parent_id = request.form.get("parent_id", type=int)
    if parent_id is not None:
        replied_to = posts_service.find_reply_target(post, parent_id)
        if replied_to is None:
            flash("The comment you replied to no longer exists.", "warning")
            return redirect(post_url)

    try:
        comment = posts_service.create_comment(post, current_user.id, content, replied_to)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error adding comment to post {post.id}: {e}")
        flash("Could not add the comment. Please try again.", "danger")
        return redirect(post_url)

    flash("Comment added successfully!", "success")
    return redirect(f"{post_url}#comment-{comment.id}")


@core_bp.route("/post/<int:post_id>/like", methods=["POST"])
@login_required
def like_post(post_id):
    post = db.get_or_404(Post, post_id)
    try:
        notifications_service.toggle_post_like(current_user._get_current_object(), post)
    except IntegrityError:
        db.session.rollback()
        flash("That like was already being updated. Please try again.", "info")
    return _redirect_back(url_for("core.view_post", post_id=post.id))


@core_bp.route("/comment/<int:comment_id>/like", methods=["POST"])
@login_required
def like_comment(comment_id):
    comment = db.get_or_404(Comment, comment_id)
    try:
        notifications_service.toggle_comment_like(
            current_user._get_current_object(), comment
        )
    except IntegrityError:
        db.session.rollback()
        flash("That like was already being updated. Please try again.", "info")
    post_url = url_for("core.view_post", post_id=comment.post_id)
    return _redirect_back(f"{post_url}#comment-{comment.id}")


@core_bp.route("/post/<int:post_id>/repost", methods=["POST"])
@login_required
def repost(post_id):
    post = db.get_or_404(Post, post_id)
    try:
        reposted, _ = posts_service.toggle_repost(current_user._get_current_object(), post)
    except IntegrityError:
        db.session.rollback()
        flash("That repost was already being updated. Please try again.", "info")
    else:
        flash("Reposted!" if reposted else "Repost removed.", "success")
    return _redirect_back(url_for("core.view_post", post_id=post.id))


@core_bp.route("/settings", methods=["GET", "POST"])
@core_bp.route("/complete-profile", methods=["GET", "POST"])
@login_required
def settings():
    user = current_user._get_current_object()
    if request.method == "POST":
        changes = {
            "name": request.form.get("name", ""),
            "bio": request.form.get("bio", "").strip(),
            "post_view_mode": request.form.get("post_view_mode", user.post_view_mode),
        }
        avatar_file = request.files.get("avatar_file")
        try:
            if avatar_file is not None and avatar_file.filename:
                changes["avatar"] = save_image_upload(avatar_file)
            elif "avatar" in request.form:
                changes["avatar"] = request.form["avatar"].strip()
            users_service.update_profile(user, changes)
        except (ProfileError, UploadError) as e:
            db.session.rollback()
            flash(str(e), "danger")
            return render_template("settings.html", user=user, view_modes=POST_VIEW_MODES), 400

        current_app.logger.info(f"User {user.id} updated their profile")
        flash("Profile updated successfully!", "success")
        return redirect(url_for("core.settings"))
    return render_template("settings.html", user=user, view_modes=POST_VIEW_MODES)


@core_bp.route("/settings/delete-account", methods=["POST"])
@login_required
def delete_account():
    user = current_user._get_current_object()
    user_id = user.id
    logout_user()
    users_service.delete_account(user)
    current_app.logger.info(f"Deleted account {user_id}")
    flash("Your account has been deleted.", "success")
    return redirect(url_for("core.index"))


@core_bp.route("/admin")
@admin_page_required
def admin_dashboard():
    users, posts = users_service.admin_overview()
    return render_template("admin.html", users=users, posts=posts)


@core_bp.route("/admin/user/<int:user_id>/ban", methods=["POST"])
@admin_page_required
def admin_ban_user(user_id):
    user = db.get_or_404(User, user_id)
    if user.id == current_user.id:
        flash("You cannot ban yourself.", "warning")
        return redirect(url_for("core.admin_dashboard"))

    banned = request.form.get("banned") == "1"
    users_service.set_banned(user, banned)
    action = "banned" if banned else "unbanned"
    current_app.logger.info(f"Admin {current_user.id} {action} user {user.id}")
    flash(f"{user.display_name} has been {action}.", "success")
    return redirect(url_for("core.admin_dashboard"))


@core_bp.route("/login", methods=["GET", "POST"])
def login():
    if current_user.is_authenticated:
        return redirect(url_for("core.index"))
    if request.method == "POST":
        email = request.form.get("email", "").strip().lower()
        password = request.form.get("password", "")
        user = authenticate(email, password)
        if user:
            login_user(user)
            flash("You are now logged in!", "success")
            next_page = request.args.get("next")
            if not next_page or not next_page.startswith("/"):
                next_page = url_for("core.index")
            return redirect(next_page)
        flash("Invalid credentials.", "danger")
        return render_template("login.html"), 401
    return render_template("login.html")


@core_bp.route("/register", methods=["GET", "POST"])
def register():
    if current_user.is_authenticated:
        return redirect(url_for("core.index"))
    if request.method == "POST":
        email = request.form.get("email", "").strip().lower()
        password = request.form.get("password", "")
        name = request.form.get("name", "").strip()

        if not email or "@" not in email or len(password) < 6:
            flash(
                "A valid email and a password of at least 6 characters are required.",
                "danger",
            )
            return render_template("register.html"), 400
        if User.query.filter_by(email=email).first():
            flash("An account with that email already exists.", "warning")
            return render_template("register.html"), 409

        user = User(name=name or email.split("@", 1)[0], email=email)
        user.set_password(password)
        db.session.add(user)
        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Error registering user {email}: {e}")
            flash("Registration failed, please try again.", "danger")
            return render_template("register.html"), 500

        current_app.logger.info(f"Registered user {user.id}")
        flash("Registration successful. Please log in.", "success")
        return redirect(url_for("core.login"))
    return render_template("register.html")


@core_bp.route("/logout")
@login_required
def logout():
    logout_user()
    flash("You are now logged out.", "success")
    return redirect(url_for("core.login"))


@core_bp.route("/uploads/<path:filename>")
def uploaded_file(filename):
    upload_folder = current_app.config["UPLOAD_FOLDER"]
    response = send_from_directory(
        upload_folder, filename, max_age=UPLOAD_CACHE_SECONDS
    )
    response.headers["Cache-Control"] = (
        f"public, max-age={UPLOAD_CACHE_SECONDS}, immutable"
    )
    return response


@core_bp.route("/sitemap.xml")
def sitemap():
    site_url = current_app.config.get("SITE_URL", "").rstrip("/")
    posts = Post.query.order_by(Post.updated_at.desc()).all()
    users = User.query.order_by(User.id).all()
    xml = render_template("sitemap.xml", site_url=site_url, posts=posts, users=users)
    response = make_response(xml)
    response.headers["Content-Type"] = "application/xml"
    return response
