"""Database configuration and initialization."""
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _engine_options(app) -> dict:
    """Build create_engine kwargs for the configured backend."""
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if database_uri.startswith('sqlite'):
        options['connect_args'] = {'check_same_thread': False}
        return options

    options['pool_size'] = 10
    options['max_overflow'] = 20
    if database_uri.startswith('postgresql'):
        # Bound every statement so a stuck query surfaces as DatabaseError
        timeout_ms = int(app.config.get('DB_STATEMENT_TIMEOUT_MS', 5000))
        options['connect_args'] = {'options': f'-c statement_timeout={timeout_ms}'}
    return options


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    engine = create_engine(app.config['SQLALCHEMY_DATABASE_URI'], **_engine_options(app))

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_tables():
    """Create all tables known to the declarative base."""
    # Import models so they register on Base.metadata
    from storefront import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
