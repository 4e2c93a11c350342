"""Client module - backend clients, completion tracking and transfers."""
