# bazaar/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import event

db = SQLAlchemy()
jwt = JWTManager()
cors = CORS()
migrate = Migrate()


def enable_sqlite_transactions(engine):
    """
    pysqlite starts transactions lazily and lets SAVEPOINT/RELEASE commit on
    their own. Take over BEGIN so nested transactions and rollbacks behave
    like they do on Postgres.
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")
