#!/usr/bin/env python3
"""
festmix HTTP Server Runner
"""

import os

from festmix.crosscutting.logging import setup_logging
from festmix.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    setup_logging(os.getenv('FESTMIX_LOG_LEVEL', 'INFO'))
    server = HTTPServer(
        host=os.getenv('FESTMIX_HOST', 'localhost'),
        port=int(os.getenv('FESTMIX_PORT', '3000')),
        debug=os.getenv('FESTMIX_DEBUG', '').lower() in ('1', 'true', 'yes')
    )
    server.run()


if __name__ == '__main__':
    main()
