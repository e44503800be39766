# qrledger_api/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import event

db = SQLAlchemy()
migrate = Migrate()

def normalize_db_url(url: str) -> str:
    if not url:
        return url
    # Render / Heroku style → SQLAlchemy psycopg3 driver
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url

def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///") or ":memory:" in url

def init_db(app):
    url = app.config.get("SQLALCHEMY_DATABASE_URI", "") or ""
    app.config["SQLALCHEMY_DATABASE_URI"] = normalize_db_url(url)

    if url.startswith("sqlite"):
        # writers wait on each other instead of failing fast
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"connect_args": {"timeout": 30}})
    else:
        # pool/ssl health for hosted Postgres
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "pool_pre_ping": True,
            "pool_recycle": 270,
            "pool_size": 5,
            "max_overflow": 2,
            "pool_timeout": 30,
        })

    db.init_app(app)

    if url.startswith("sqlite") and not _is_memory_sqlite(url):
        with app.app_context():
            _use_immediate_transactions(db.engine)

def _use_immediate_transactions(engine):
    """
    pysqlite opens deferred transactions lazily, so two redemptions that both
    read before writing can deadlock on the lock upgrade. Taking the write
    lock at BEGIN makes concurrent units of work queue up instead.
    """
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
