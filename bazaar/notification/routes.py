from flask import request

from ..errors import NotFoundError
from ..extensions import db
from ..model import Notification
from ..utils.api import ok
from ..utils.decorators import login_required
from . import bp


@bp.get("")
@login_required
def my_notifications(user):
    q = Notification.query.filter_by(user_id=user.id)
    if request.args.get("unread") in ("1", "true"):
        q = q.filter(Notification.is_read.is_(False))
    notes = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(100).all()
    return ok("notifications", [n.as_api() for n in notes])


@bp.put("/<int:note_id>/read")
@login_required
def mark_as_read(user, note_id):
    note = db.session.get(Notification, note_id)
    if not note or note.user_id != user.id:
        raise NotFoundError("Notification not found", notification_id=note_id)
    note.is_read = True
    db.session.commit()
    return ok("Marked as read", note.as_api())
