"""Gallery store integration and async tasks."""
