"""Worker task: one rehydration attempt per process."""
