class ClubError(Exception):
    """A problem the person at the form can fix; the message is shown as-is."""
