from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, scoped_session
from models import Base

db = scoped_session(sessionmaker())


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


def init_db(app):
    uri = app.config['SQLALCHEMY_DATABASE_URI']
    connect_args = {}
    if uri.startswith('sqlite'):
        connect_args['check_same_thread'] = False
    engine = create_engine(uri, connect_args=connect_args)
    if engine.dialect.name == 'sqlite':
        event.listen(engine, 'connect', _enable_sqlite_foreign_keys)
    Base.metadata.create_all(engine)
    db.remove()
    db.configure(bind=engine)

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        db.remove()

    return engine
