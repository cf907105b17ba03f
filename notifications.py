from flask import current_app
from flask_mail import Mail, Message
from models import User, UserRole

mail = Mail()


def _send(subject, recipients, body):
    if not recipients:
        return False
    try:
        mail.send(Message(subject=subject, recipients=recipients, body=body))
    except Exception as e:
        current_app.logger.warning('Mail send failed: %s', e)
        return False
    return True


def notify_new_complaint(session, complaint, submitter_name, submitter_email):
    admins = session.query(User).join(UserRole, UserRole.user_id == User.id).filter(UserRole.role == 'admin').all()
    recipients = [a.email for a in admins if a.email]
    return _send(
        f'New complaint: {complaint.title}',
        recipients,
        f'New complaint submitted by {submitter_name} ({submitter_email})\n\n'
        f'Category: {complaint.category}\n\nDescription:\n{complaint.description}',
    )


def notify_status_change(session, complaint):
    owner = session.get(User, complaint.user_id)
    if not owner or not owner.email:
        return False
    return _send(
        f'Complaint "{complaint.title}" updated: {complaint.status}',
        [owner.email],
        f'Your complaint status has been changed to {complaint.status}.\n\n'
        f'Admin remarks:\n{complaint.admin_remarks or "(none)"}',
    )
