import os
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


def env_flag(name, default=False):
    """Read a yes/no setting; accepts 1/0, true/false, yes/no, on/off."""
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'change-this-to-a-strong-secret'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///' + os.path.join(basedir, 'portal.db')

    # Notification mail (Flask-Mail)
    MAIL_SERVER = os.environ.get('MAIL_SERVER')
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 25)
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_USE_TLS = env_flag('MAIL_USE_TLS')
    MAIL_USE_SSL = env_flag('MAIL_USE_SSL')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER')

    # JWT
    JWT_SECRET = os.environ.get('JWT_SECRET') or 'change-this-jwt-secret'
    JWT_EXP_SECONDS = int(os.environ.get('JWT_EXP_SECONDS') or 3600)

    # Attachment bucket
    ATTACHMENT_FOLDER = os.environ.get('ATTACHMENT_FOLDER') or os.path.join(basedir, 'complaint-files')
    ATTACHMENT_URL_PREFIX = '/attachments'
    MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024  # 10 MB
    ALLOWED_ATTACHMENT_TYPES = (
        'image/jpeg',
        'image/png',
        'image/gif',
        'image/webp',
        'application/pdf',
        'application/msword',
        'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    )
    # request bodies carry form fields on top of the file
    MAX_CONTENT_LENGTH = MAX_ATTACHMENT_SIZE + 1024 * 1024

    # Roles
    BOOTSTRAP_ADMIN_EMAIL = (os.environ.get('BOOTSTRAP_ADMIN_EMAIL') or 'admin@example.com').lower()
    BOOTSTRAP_ADMIN_PASSWORD = os.environ.get('BOOTSTRAP_ADMIN_PASSWORD') or 'password123'
    # treat the bootstrap address as admin even without a role row
    ROLE_EMAIL_SHORTCUT = env_flag('ROLE_EMAIL_SHORTCUT', default=True)
