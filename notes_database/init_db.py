"""
Store initialization script.

Run this script to create the empty users/notes collections for the configured
backend (`[]` JSON files or SQL tables).
"""
from notes_database.db import get_store


# PUBLIC_INTERFACE
def init_db(store=None):
    """Creates the collections if they do not exist. Returns (user_count, note_count)."""
    store = store or get_store()
    users, notes = store.load()
    return len(users), len(notes)


if __name__ == "__main__":
    user_count, note_count = init_db()
    print(f"Store ready: {user_count} users, {note_count} notes.")
