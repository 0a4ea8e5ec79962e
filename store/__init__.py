from store.deadline_store import DeadlineStore, DuplicateLinkageError
