import os

# Cheap bcrypt cost for tests; must be set before dbfacade.core.config is imported.
os.environ.setdefault("DBFACADE_HASH_ROUNDS", "4")
