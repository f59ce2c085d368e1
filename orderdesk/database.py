"""Database configuration and initialization."""
from sqlalchemy import BigInteger, Integer, create_engine, event
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only aliases rowid for INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer, 'sqlite')

# Global session and engine
engine = None
db_session = scoped_session(sessionmaker(autocommit=False, autoflush=False))


def _enable_sqlite_savepoints(sqlite_engine):
    """Let pysqlite honour SAVEPOINT (begin_nested) by emitting BEGIN ourselves."""

    @event.listens_for(sqlite_engine, 'connect')
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, 'begin')
    def do_begin(conn):
        conn.exec_driver_sql('BEGIN')


def init_engine(database_uri, echo=False):
    """Create the engine and bind the scoped session to it."""
    global engine

    if database_uri.startswith('sqlite'):
        options = {'connect_args': {'check_same_thread': False}}
        if ':memory:' in database_uri or database_uri in ('sqlite://', 'sqlite:///'):
            options['poolclass'] = StaticPool
        engine = create_engine(database_uri, echo=echo, **options)
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(
            database_uri,
            echo=echo,
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=10,
            max_overflow=20
        )

    db_session.remove()
    db_session.configure(bind=engine)
    Base.query = db_session.query_property()
    return engine


def init_db(app):
    """Initialize database connection."""
    init_engine(
        app.config['SQLALCHEMY_DATABASE_URI'],
        echo=app.config.get('SQLALCHEMY_ECHO', False)
    )

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table known to the models package."""
    import orderdesk.models  # noqa: F401  (registers mappers)
    Base.metadata.create_all(bind=engine)


def drop_all():
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


# Alias for easier imports
db = db_session
