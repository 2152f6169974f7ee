"""ApplyMate: chat assistant for tracking job applications in a spreadsheet."""
