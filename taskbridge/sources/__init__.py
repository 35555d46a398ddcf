"""Platform adapters: remote sources and the Todoist mirror."""
