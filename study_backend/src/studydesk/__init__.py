"""
StudyDesk package.

Two halves live here:
- the FastAPI service (studydesk.main) exposing the AI and PDF endpoints
- the client core (studydesk.client) that mirrors the user's notes, tasks and
  flashcards from the document store and drives editing, autosave and study mode
"""
