from flask_wtf import FlaskForm
from flask_wtf.file import FileField
from wtforms import StringField, PasswordField, SubmitField, SelectField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, EqualTo, Optional
from models import COMPLAINT_CATEGORIES, COMPLAINT_STATUSES

class RegisterForm(FlaskForm):
    full_name = StringField('Full name', validators=[DataRequired(), Length(min=2, max=100, message='Name must be at least 2 characters')])
    email = StringField('Email', validators=[DataRequired(), Email(message='Invalid email address'), Length(max=255)])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=6, max=100, message='Password must be at least 6 characters')])
    password2 = PasswordField('Confirm Password', validators=[DataRequired(), EqualTo('password', message="Passwords don't match")])
    submit = SubmitField('Create Account')

class LoginForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(), Email(message='Invalid email address')])
    password = PasswordField('Password', validators=[DataRequired()])
    submit = SubmitField('Sign In')

class ComplaintForm(FlaskForm):
    # lengths are checked by validate_complaint so web and API share messages
    title = StringField('Title')
    category = SelectField('Category', choices=[(c, c) for c in COMPLAINT_CATEGORIES], validate_choice=False)
    description = TextAreaField('Description')
    attachment = FileField('Attachment (Optional)')
    submit = SubmitField('Submit Complaint')

class TriageForm(FlaskForm):
    status = SelectField('Status', choices=[(s, s) for s in COMPLAINT_STATUSES], validators=[DataRequired()])
    admin_remarks = TextAreaField('Admin remarks', validators=[Optional(), Length(max=2000)])
    submit = SubmitField('Update Complaint')

class ProfileForm(FlaskForm):
    full_name = StringField('Full name', validators=[DataRequired(), Length(min=2, max=100, message='Name must be at least 2 characters')])
    submit = SubmitField('Save')
