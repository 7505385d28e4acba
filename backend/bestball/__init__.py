from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Engine-level ping/pong is the channel's liveness timeout
    socketio.init_app(
        flask_app,
        cors_allowed_origins=allowed_origins,
        ping_interval=flask_app.config.get('PING_INTERVAL_SEC', 25),
        ping_timeout=flask_app.config.get('PING_TIMEOUT_SEC', 20),
    )

    from bestball.main import main
    flask_app.register_blueprint(main)

    from bestball.api.matches import best_ball
    flask_app.register_blueprint(best_ball, url_prefix='/api/best-ball')

    from bestball.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from bestball.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.request_loader
    def load_user_from_request(request):
        header = request.headers.get('Authorization', '')
        if header.startswith('Bearer '):
            return User.from_token(header[len('Bearer '):].strip())
        return None

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from bestball.models import Team, Player, Round, BestBallMatch
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            admin = User(username='admin', is_admin=True)
            admin.set_password('password')
            viewer = User(username='viewer')
            viewer.set_password('password')
            db.session.add_all([admin, viewer])

            aviators = Team(name='Aviators', short_name='AVI', color_code='#004A7F')
            producers = Team(name='Producers', short_name='PRO', color_code='#800000')
            db.session.add_all([aviators, producers])
            db.session.flush()
            for name, team in [('Alice', aviators), ('Bob', aviators), ('Cara', producers), ('Dan', producers)]:
                db.session.add(Player(name=name, team_id=team.id))

            rnd = Round(name='Saturday Best Ball', course_name='Home Course')
            db.session.add(rnd)
            db.session.flush()
            db.session.add(BestBallMatch(round_id=rnd.id, team1_id=aviators.id, team2_id=producers.id))

            db.session.commit()
            print('Database has been reset and seeded!')
            print(f'admin token: {admin.token}')

    @click.command('create-admin')
    @click.argument('username')
    @click.argument('password')
    def create_admin_command(username, password):
        """Creates a privileged user able to create matches and submit scores."""
        with flask_app.app_context():
            if User.query.filter_by(username=username).first():
                raise click.ClickException(f'User {username} already exists')
            user = User(username=username, is_admin=True)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            print(f'Created admin {username} (token: {user.token})')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(create_admin_command)

    return flask_app
