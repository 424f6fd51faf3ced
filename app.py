import os

from config import config
from restohub import create_app

app = create_app(config[os.getenv('FLASK_CONFIG', 'default')])
celery = app.extensions["celery"]


if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    app.run(host="0.0.0.0", port=port, debug=False)
