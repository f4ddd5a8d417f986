"""Project root entry point for launching the job API."""

from __future__ import annotations

import os


def main():
    from langsync.web import create_app

    app = create_app()
    port = int(os.environ.get("LANGSYNC_PORT", "5500"))
    app.run(host="0.0.0.0", port=port, debug=False)


if __name__ == "__main__":
    main()
