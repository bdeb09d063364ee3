"""Development server: ``python -m juniorcars.run [port]``."""
import sys

from .wsgi import app

if __name__ == '__main__':
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 5000
    app.logger.info(f'Running JuniorCars on http://127.0.0.1:{port}')
    app.run(host='127.0.0.1', port=port, debug=False)
