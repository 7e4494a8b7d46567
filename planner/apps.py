from django.apps import AppConfig
from django.conf import settings


class PlannerConfig(AppConfig):
    name = "planner"
    verbose_name = "Sprint planner"

    def ready(self):
        from planner.context import ServiceContext

        self.context = ServiceContext.from_settings(settings)
