"""Badge criteria evaluation and awards."""
