"""CLI entry point for tutorcast.cli module.

Enables execution via: python -m tutorcast.cli
"""

from tutorcast.cli.video_jobs import main

if __name__ == "__main__":
    main()
