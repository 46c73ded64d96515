# SPDX-License-Identifier: Apache-2.0

"""
Vercel-specific Flask application entry point.
The MongoDB client and notification transport connect lazily on first use.
"""

import os
from agrimarket_api.app import create_app

# Create the Flask application instance
app = create_app()

# Vercel expects the WSGI application to be named 'app'
if __name__ == "__main__":
    # This won't be called in Vercel, but useful for local testing
    app.run(debug=False, host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
