from intake_workflow.notes.renderer import NoteRenderer

__all__ = ["NoteRenderer"]
