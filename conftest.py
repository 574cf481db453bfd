# Make the project root importable for tests and pick up a local .env
import os
import sys

from dotenv import load_dotenv

project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

# Tests must not depend on a developer's dev.yml
os.environ.setdefault("CHORUS_IGNORE_DEV_CONFIG", "1")

load_dotenv(os.path.join(project_root, ".env"))
