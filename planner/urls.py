"""URL routes for the planner app."""

from django.urls import path

from . import views

app_name = "planner"

urlpatterns = [
    path("health/", views.health_check, name="health_check"),
    path("sprint-planner/", views.sprint_planner, name="sprint_planner"),
    path("sprint-planner/move/", views.sprint_planner_move, name="sprint_planner_move"),
    path("agenda/", views.agenda, name="agenda"),
    path("agenda/move/", views.agenda_move, name="agenda_move"),
    path("agenda/edit/", views.agenda_edit, name="agenda_edit"),
    path("agenda/advance/", views.agenda_advance, name="agenda_advance"),
    path("sprints/sync/", views.sprints_sync, name="sprints_sync"),
    path("team-members/sync/", views.team_members_sync, name="team_members_sync"),
    path("tasks/", views.create_task, name="create_task"),
    path("tasks/edit-field/", views.edit_field_view, name="edit_field"),
    path("transcripts/format/", views.format_transcript_view, name="format_transcript"),
    path("corrections/extract/", views.extract_corrections_view, name="extract_corrections"),
    path("corrections/<str:original>/", views.delete_correction_view, name="delete_correction"),
    path("pending-tasks/", views.pending_tasks, name="pending_tasks"),
    path("pending-tasks/<str:task_id>/complete/", views.complete_pending_task, name="complete_pending_task"),
]
