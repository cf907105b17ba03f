import os
from functools import wraps
import click
from flask import Flask, render_template, redirect, url_for, flash, request, jsonify, abort, send_file, g
from flask_login import LoginManager, login_required, current_user
from config import Config
from database import db, init_db
from models import User, COMPLAINT_CATEGORIES, COMPLAINT_STATUSES
from forms import RegisterForm, LoginForm, ComplaintForm, TriageForm, ProfileForm
from errors import PortalError, AuthError, AuthorizationError, StorageError
from notifications import mail
from storage import AttachmentStore, path_from_url
import auth
import complaints

login_manager = LoginManager()
login_manager.login_view = 'auth_page'
login_manager.login_message = 'Please sign in to continue'

@login_manager.user_loader
def load_user(user_id):
    return db.get(User, user_id)

def workspace_url():
    if g.get('auth') is not None and g.auth.is_admin:
        return url_for('admin_dashboard')
    return url_for('student_dashboard')

def jwt_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        header = request.headers.get('Authorization', None)
        if not header:
            return jsonify({'error': 'authorization required'}), 401
        parts = header.split()
        if parts[0].lower() != 'bearer' or len(parts) != 2:
            return jsonify({'error': 'invalid auth header'}), 401
        user = auth.decode_token(db, parts[1])
        g.auth = auth.build_auth_context(db, user)
        return f(*args, **kwargs)
    return decorated

def _bearer_token():
    parts = (request.headers.get('Authorization') or '').split()
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        raise AuthError('authorization required')
    return parts[1]


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    login_manager.init_app(app)
    mail.init_app(app)
    init_db(app)

    # ensure the attachment bucket exists
    os.makedirs(app.config['ATTACHMENT_FOLDER'], exist_ok=True)

    @app.before_request
    def load_auth_context():
        # role resolution finishes here, before any role-gated view runs
        if current_user.is_authenticated:
            g.auth = auth.build_auth_context(db, current_user._get_current_object())
        else:
            g.auth = None

    @auth.session_changed.connect_via(app)
    def rebuild_auth_context(sender, event=None, user=None, **extra):
        if event == auth.SIGNED_OUT or user is None:
            g.auth = None
        else:
            g.auth = auth.build_auth_context(db, user)

    @app.context_processor
    def inject_auth():
        return {'auth': g.get('auth'), 'categories': COMPLAINT_CATEGORIES, 'statuses': COMPLAINT_STATUSES}

    @app.errorhandler(PortalError)
    def handle_portal_error(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': e.message}), e.status_code
        flash(e.message, 'danger')
        return redirect(url_for('index'))

    @app.errorhandler(413)
    def handle_too_large(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'File size must be less than 10MB'}), 413
        flash('File size must be less than 10MB', 'danger')
        return redirect(url_for('student_dashboard'))

    # --- Web UI ---
    @app.route('/')
    def index():
        return render_template('index.html')

    @app.route('/auth', methods=['GET', 'POST'])
    def auth_page():
        if current_user.is_authenticated:
            return redirect(workspace_url())
        user_type = 'admin' if request.args.get('type') == 'admin' else 'student'
        form = LoginForm()
        if form.validate_on_submit():
            try:
                auth.sign_in(db, form.email.data, form.password.data)
            except PortalError as e:
                flash(e.message, 'danger')
                return render_template('auth.html', form=form, register_form=RegisterForm(formdata=None), user_type=user_type, mode='login')
            flash('Welcome back!', 'success')
            return redirect(workspace_url())
        for errors in form.errors.values():
            flash(errors[0], 'danger')
            break
        return render_template('auth.html', form=form, register_form=RegisterForm(formdata=None), user_type=user_type, mode='login')

    @app.route('/auth/register', methods=['GET', 'POST'])
    def register():
        if current_user.is_authenticated:
            return redirect(workspace_url())
        form = RegisterForm()
        if form.validate_on_submit():
            try:
                auth.sign_up(db, form.email.data, form.password.data, form.full_name.data)
                auth.sign_in(db, form.email.data, form.password.data)
            except PortalError as e:
                flash(e.message, 'danger')
                return render_template('auth.html', form=LoginForm(formdata=None), register_form=form, user_type='student', mode='register')
            flash('Account created successfully!', 'success')
            return redirect(workspace_url())
        for errors in form.errors.values():
            flash(errors[0], 'danger')
            break
        return render_template('auth.html', form=LoginForm(formdata=None), register_form=form, user_type='student', mode='register')

    @app.route('/logout')
    @login_required
    def logout():
        auth.sign_out()
        flash('Logged out', 'info')
        return redirect(url_for('index'))

    @app.route('/student/dashboard')
    @login_required
    def student_dashboard():
        if g.auth.is_admin:
            return redirect(url_for('admin_dashboard'))
        own = complaints.list_own_complaints(db, g.auth)
        return render_template('student_dashboard.html',
                               complaints=own,
                               stats=complaints.complaint_stats(own),
                               profile=auth.get_profile(db, g.auth),
                               form=ComplaintForm(formdata=None))

    @app.route('/complaint/new', methods=['POST'])
    @login_required
    def complaint_new():
        form = ComplaintForm()
        if form.validate_on_submit():
            try:
                complaints.submit_complaint(db, g.auth, form.title.data, form.category.data,
                                            form.description.data, request.files.get('attachment'))
            except PortalError as e:
                flash(e.message, 'danger')
            else:
                flash('Complaint submitted successfully!', 'success')
        return redirect(url_for('student_dashboard'))

    @app.route('/complaint/<complaint_id>/edit', methods=['GET', 'POST'])
    @login_required
    def complaint_edit(complaint_id):
        c = complaints.get_complaint(db, g.auth, complaint_id)
        if not c:
            abort(404)
        form = ComplaintForm(obj=c)
        if form.validate_on_submit():
            try:
                complaints.edit_complaint(db, g.auth, complaint_id, form.title.data,
                                          form.category.data, form.description.data)
            except PortalError as e:
                flash(e.message, 'danger')
            else:
                flash('Complaint updated', 'success')
                return redirect(url_for('student_dashboard'))
        return render_template('complaint_edit.html', form=form, complaint=c)

    @app.route('/complaint/<complaint_id>/withdraw', methods=['POST'])
    @login_required
    def complaint_withdraw(complaint_id):
        try:
            complaints.withdraw_complaint(db, g.auth, complaint_id)
        except PortalError as e:
            flash(e.message, 'danger')
        else:
            flash('Complaint withdrawn', 'info')
        return redirect(url_for('student_dashboard'))

    @app.route('/profile', methods=['GET', 'POST'])
    @login_required
    def profile():
        p = auth.get_profile(db, g.auth)
        form = ProfileForm(obj=p)
        if form.validate_on_submit():
            try:
                auth.update_profile(db, g.auth, form.full_name.data)
            except PortalError as e:
                flash(e.message, 'danger')
            else:
                flash('Profile saved', 'success')
                return redirect(workspace_url())
        return render_template('profile.html', form=form, profile=p, roles=auth.get_roles(db, g.auth))

    @app.route('/admin/dashboard')
    @login_required
    def admin_dashboard():
        if not g.auth.is_admin:
            return redirect(url_for('student_dashboard'))
        status = request.args.get('status', complaints.ALL)
        category = request.args.get('category', complaints.ALL)
        rows = complaints.list_all_complaints(db, g.auth)
        return render_template('admin_dashboard.html',
                               complaints=complaints.filter_complaints(rows, status, category),
                               stats=complaints.complaint_stats(rows),
                               status_filter=status,
                               category_filter=category)

    @app.route('/admin/complaint/<complaint_id>', methods=['GET', 'POST'])
    @login_required
    def complaint_triage(complaint_id):
        if not g.auth.is_admin:
            abort(403)
        c = complaints.get_complaint(db, g.auth, complaint_id)
        if not c:
            abort(404)
        form = TriageForm()
        if request.method == 'GET':
            form.status.data = c.status
            form.admin_remarks.data = c.admin_remarks or ''
        if form.validate_on_submit():
            try:
                complaints.triage_complaint(db, g.auth, complaint_id, form.status.data, form.admin_remarks.data)
            except PortalError as e:
                flash(e.message, 'danger')
            else:
                flash('Complaint updated successfully!', 'success')
                return redirect(url_for('admin_dashboard'))
        return render_template('complaint_triage.html', form=form, complaint=c)

    @app.route('/attachments/<path:path>')
    @login_required
    def attachment(path):
        try:
            full = AttachmentStore(db, g.auth).open(path)
        except AuthorizationError:
            abort(403)
        except StorageError:
            abort(404)
        return send_file(full, as_attachment=True)

    @app.route('/setup-admin', methods=['POST'])
    def setup_admin():
        try:
            user, created = auth.ensure_bootstrap_admin(db)
        except PortalError as e:
            return jsonify({'error': e.message}), 400
        if not created:
            return jsonify({'message': 'Admin account already exists'})
        return jsonify({'message': 'Admin account created successfully',
                        'user': {'id': user.id, 'email': user.email}})

    @app.cli.command('setup-admin')
    def setup_admin_command():
        """Create the bootstrap admin account if it is missing."""
        user, created = auth.ensure_bootstrap_admin(db)
        if created:
            click.echo(f'Admin created with email {user.email}. Change the password immediately.')
        else:
            click.echo('Admin already exists.')

    # --- REST API (JSON) with JWT support ---
    @app.route('/api/register', methods=['POST'])
    def api_register():
        data = request.get_json(silent=True) or {}
        user = auth.sign_up(db, data.get('email'), data.get('password'), data.get('full_name'))
        return jsonify({'id': user.id, 'email': user.email}), 201

    @app.route('/api/token', methods=['POST'])
    def api_token():
        data = request.get_json(silent=True) or {}
        if not data.get('email') or not data.get('password'):
            return jsonify({'error': 'missing credentials'}), 400
        return jsonify({'token': auth.sign_in_token(db, data['email'], data['password'])})

    @app.route('/api/token/refresh', methods=['POST'])
    def api_token_refresh():
        return jsonify({'token': auth.refresh_token(db, _bearer_token())})

    @app.route('/api/me', methods=['GET'])
    @jwt_required
    def api_me():
        p = auth.get_profile(db, g.auth)
        return jsonify({
            'id': g.auth.user_id,
            'email': g.auth.email,
            'is_admin': g.auth.is_admin,
            'full_name': p.full_name if p else None,
            'roles': auth.get_roles(db, g.auth),
        })

    @app.route('/api/complaints', methods=['GET'])
    @jwt_required
    def api_list_complaints():
        if g.auth.is_admin:
            rows = complaints.list_all_complaints(db, g.auth)
        else:
            rows = [c.to_dict() for c in complaints.list_own_complaints(db, g.auth)]
        rows = complaints.filter_complaints(rows,
                                            request.args.get('status', complaints.ALL),
                                            request.args.get('category', complaints.ALL))
        return jsonify(rows)

    @app.route('/api/complaints', methods=['POST'])
    @jwt_required
    def api_create_complaint():
        # accept form-data with optional file
        if request.content_type and 'multipart/form-data' in request.content_type:
            data = request.form
            upload = request.files.get('attachment')
        else:
            data = request.get_json(silent=True) or {}
            upload = None
        c = complaints.submit_complaint(db, g.auth, data.get('title'), data.get('category'),
                                        data.get('description'), upload)
        return jsonify(c.to_dict()), 201

    @app.route('/api/complaints/<complaint_id>', methods=['GET', 'PUT', 'DELETE'])
    @jwt_required
    def api_complaint(complaint_id):
        c = complaints.get_complaint(db, g.auth, complaint_id)
        if not c:
            return jsonify({'error': 'not found'}), 404
        if request.method == 'GET':
            return jsonify(c.to_dict())
        if request.method == 'DELETE':
            complaints.withdraw_complaint(db, g.auth, complaint_id)
            return jsonify({'ok': True})
        data = request.get_json(silent=True) or {}
        if g.auth.is_admin:
            c = complaints.triage_complaint(db, g.auth, complaint_id,
                                            data.get('status', c.status),
                                            data.get('admin_remarks'))
        else:
            c = complaints.edit_complaint(db, g.auth, complaint_id,
                                          data.get('title', c.title),
                                          data.get('category', c.category),
                                          data.get('description', c.description))
        return jsonify(c.to_dict())

    @app.route('/api/complaints/<complaint_id>/attachment', methods=['GET'])
    @jwt_required
    def api_get_attachment(complaint_id):
        c = complaints.get_complaint(db, g.auth, complaint_id)
        path = path_from_url(c.file_url) if c else None
        if not path:
            return jsonify({'error': 'not found'}), 404
        try:
            full = AttachmentStore(db, g.auth).open(path)
        except StorageError:
            return jsonify({'error': 'not found'}), 404
        return send_file(full, as_attachment=True)

    return app


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', debug=True)
