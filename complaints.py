"""Complaint records and the student/admin workflows built on them."""
from datetime import datetime
from flask import current_app
from sqlalchemy.exc import OperationalError
from auth import has_role
from errors import ValidationError, AuthorizationError, NetworkError, StorageError
from models import Complaint, Profile, COMPLAINT_CATEGORIES, COMPLAINT_STATUSES, STATUS_PENDING
from notifications import notify_new_complaint, notify_status_change
from storage import AttachmentStore, validate_attachment, object_path, path_from_url

ALL = 'all'
MISSING_NAME = 'Unknown'
MISSING_EMAIL = 'N/A'


class ComplaintStore:
    """Row-level access to complaints for one caller.

    select: owner or admin. insert: owner only. update: admin, or owner
    while Pending. delete: owner while Pending. Rows the caller cannot see
    are absent rather than forbidden.
    """

    def __init__(self, session, ctx):
        if ctx is None:
            raise AuthorizationError()
        self.session = session
        self.ctx = ctx

    def _fetch(self, run):
        try:
            return run()
        except OperationalError as e:
            self.session.rollback()
            current_app.logger.error('Complaint read failed: %s', e)
            raise NetworkError()

    def is_admin(self):
        return self._fetch(lambda: has_role(self.session, self.ctx.user_id, 'admin'))

    def visible(self):
        q = self.session.query(Complaint)
        if not self.is_admin():
            q = q.filter(Complaint.user_id == self.ctx.user_id)
        return q

    def get(self, complaint_id):
        q = self.visible().filter(Complaint.id == complaint_id)
        return self._fetch(q.first)

    def list(self, owner_only=False):
        q = self.visible()
        if owner_only:
            q = q.filter(Complaint.user_id == self.ctx.user_id)
        return self._fetch(q.order_by(Complaint.created_at.desc()).all)

    def _commit(self):
        try:
            self.session.commit()
        except OperationalError as e:
            self.session.rollback()
            current_app.logger.error('Complaint write failed: %s', e)
            raise NetworkError()
        except Exception:
            self.session.rollback()
            raise

    def insert(self, **values):
        if values.get('user_id') != self.ctx.user_id:
            raise AuthorizationError()
        now = datetime.utcnow()
        values.setdefault('created_at', now)
        values.setdefault('updated_at', now)
        complaint = Complaint(**values)
        self.session.add(complaint)
        self._commit()
        return complaint

    def update(self, complaint_id, **values):
        q = self.session.query(Complaint).filter(Complaint.id == complaint_id)
        if not self.is_admin():
            q = q.filter(Complaint.user_id == self.ctx.user_id, Complaint.status == STATUS_PENDING)
        complaint = self._fetch(q.first)
        if complaint is None:
            raise AuthorizationError()
        for key, value in values.items():
            setattr(complaint, key, value)
        self._commit()
        return complaint

    def delete(self, complaint_id):
        q = self.session.query(Complaint).filter(
            Complaint.id == complaint_id,
            Complaint.user_id == self.ctx.user_id,
            Complaint.status == STATUS_PENDING,
        )
        complaint = self._fetch(q.first)
        if complaint is None:
            raise AuthorizationError()
        self.session.delete(complaint)
        self._commit()
        return complaint


def validate_complaint(title, category, description):
    """Return the trimmed fields or raise on the first violated rule."""
    title = (title or '').strip()
    description = (description or '').strip()
    if len(title) < 5:
        raise ValidationError('Title must be at least 5 characters')
    if len(title) > 200:
        raise ValidationError('Title must be at most 200 characters')
    if category not in COMPLAINT_CATEGORIES:
        raise ValidationError('Invalid category')
    if len(description) < 20:
        raise ValidationError('Description must be at least 20 characters')
    if len(description) > 2000:
        raise ValidationError('Description must be at most 2000 characters')
    return title, category, description


def submit_complaint(session, ctx, title, category, description, upload=None):
    """Create a Pending complaint, uploading ``upload`` first when given.

    ``upload`` is a werkzeug ``FileStorage``. Nothing is inserted when the
    upload fails, and the upload is removed again when the insert fails.
    """
    store = ComplaintStore(session, ctx)
    title, category, description = validate_complaint(title, category, description)

    file_url = None
    attachments = None
    path = None
    if upload is not None and upload.filename:
        data = upload.read()
        validate_attachment(upload.filename, upload.mimetype, len(data))
        attachments = AttachmentStore(session, ctx)
        path = object_path(ctx.user_id, upload.filename)
        file_url = attachments.put(path, data, upload.mimetype)

    try:
        complaint = store.insert(
            user_id=ctx.user_id,
            title=title,
            category=category,
            description=description,
            file_url=file_url,
            status=STATUS_PENDING,
            admin_remarks=None,
        )
    except Exception:
        if path:
            try:
                attachments.remove(path)
            except (StorageError, AuthorizationError) as e:
                current_app.logger.warning('Attachment %s left behind: %s', path, e)
        raise

    profile = session.get(Profile, ctx.user_id)
    notify_new_complaint(session, complaint, profile.full_name if profile else MISSING_NAME, ctx.email)
    current_app.logger.info('Complaint %s submitted by %s', complaint.id, ctx.user_id)
    return complaint


def list_own_complaints(session, ctx):
    return ComplaintStore(session, ctx).list(owner_only=True)


def get_complaint(session, ctx, complaint_id):
    return ComplaintStore(session, ctx).get(complaint_id)


def edit_complaint(session, ctx, complaint_id, title, category, description):
    title, category, description = validate_complaint(title, category, description)
    return ComplaintStore(session, ctx).update(
        complaint_id, title=title, category=category, description=description)


def withdraw_complaint(session, ctx, complaint_id):
    complaint = ComplaintStore(session, ctx).delete(complaint_id)
    path = path_from_url(complaint.file_url)
    if path:
        try:
            AttachmentStore(session, ctx).remove(path)
        except (StorageError, AuthorizationError) as e:
            current_app.logger.warning('Attachment %s left behind: %s', path, e)
    current_app.logger.info('Complaint %s withdrawn by %s', complaint_id, ctx.user_id)
    return complaint


def list_all_complaints(session, ctx):
    """Every visible complaint, newest first, with the submitter's identity."""
    store = ComplaintStore(session, ctx)
    q = (store.visible()
         .outerjoin(Profile, Profile.id == Complaint.user_id)
         .add_columns(Profile.full_name, Profile.email)
         .order_by(Complaint.created_at.desc()))
    rows = store._fetch(q.all)
    out = []
    for complaint, full_name, email in rows:
        item = complaint.to_dict()
        item['profiles'] = {
            'full_name': full_name if full_name is not None else MISSING_NAME,
            'email': email if email is not None else MISSING_EMAIL,
        }
        out.append(item)
    return out


def triage_complaint(session, ctx, complaint_id, status, remarks=None):
    if status not in COMPLAINT_STATUSES:
        raise ValidationError('Invalid status')
    if not remarks or not remarks.strip():
        remarks = None
    complaint = ComplaintStore(session, ctx).update(
        complaint_id, status=status, admin_remarks=remarks)
    notify_status_change(session, complaint)
    current_app.logger.info('Complaint %s set to %s by %s', complaint_id, status, ctx.user_id)
    return complaint


def _value(complaint, key):
    return complaint[key] if isinstance(complaint, dict) else getattr(complaint, key)


def filter_complaints(complaints, status=ALL, category=ALL):
    status = status or ALL
    category = category or ALL
    return [
        c for c in complaints
        if (status == ALL or _value(c, 'status') == status)
        and (category == ALL or _value(c, 'category') == category)
    ]


def complaint_stats(complaints):
    statuses = [_value(c, 'status') for c in complaints]
    return {
        'total': len(statuses),
        'pending': statuses.count('Pending'),
        'under_review': statuses.count('Under Review'),
        'resolved': statuses.count('Resolved'),
    }
