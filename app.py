#!/usr/bin/env python3
"""
Print Bridge - receives WooCommerce orders and prints kitchen tickets and receipts
on a network thermal printer.
"""

import os

from print_bridge import create_app

app = create_app()

if __name__ == "__main__":
    host = os.environ.get("PRINTBRIDGE_HOST", "0.0.0.0")
    port = int(os.environ.get("PRINTBRIDGE_PORT", "3000"))
    app.logger.info(f"Starting Print Bridge on http://{host}:{port}")
    app.logger.info("Press Ctrl+C to stop the server")
    app.run(host=host, port=port, debug=False)
