from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from inventory_ledger.config import settings

# Execution option marking a transaction that will write stock
WRITE_LOCK_OPTION = "inventory_write_lock"


class Base(DeclarativeBase):
    pass


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets thread sharing, a busy timeout, WAL and explicit BEGIN.

    pysqlite starts transactions lazily and only before DML, so two writers can
    both read a quantity before either takes the write lock. Transactions
    opened through ``begin_write`` emit BEGIN IMMEDIATE and take the database
    write lock up front, the SQLite counterpart of SELECT ... FOR UPDATE.
    Every other transaction is a deferred BEGIN, and WAL lets those readers
    run alongside a writer.
    """
    connect_args = {}
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = settings.SQLITE_BUSY_TIMEOUT_SECONDS

    engine = create_engine(url, echo=echo, connect_args=connect_args)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            dbapi_connection.execute("PRAGMA foreign_keys=ON")
            dbapi_connection.execute("PRAGMA journal_mode=WAL")

        @event.listens_for(engine, "begin")
        def _begin(conn):
            if conn.get_execution_options().get(WRITE_LOCK_OPTION):
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                conn.exec_driver_sql("BEGIN")

    return engine


def begin_write(db: Session) -> None:
    """Open the session's transaction as a stock write.

    Must be called before the transaction has touched the database. Backends
    other than SQLite ignore the option and lock rows with FOR UPDATE instead.
    """
    db.connection(execution_options={WRITE_LOCK_OPTION: True})


engine = create_db_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None):
    # Import all models so Base.metadata knows about them
    import inventory_ledger.models.business  # noqa: F401
    import inventory_ledger.models.inventory_transaction  # noqa: F401
    import inventory_ledger.models.product  # noqa: F401
    import inventory_ledger.models.user  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
