"""Per-process service context: the store, gateway and LLM clients."""

from __future__ import annotations

from dataclasses import dataclass

from django.apps import apps

from integrations.clickup import ClickUpGateway
from integrations.store import FirebaseStore
from planner.agenda.coordinator import AgendaPlanner
from planner.agenda.workload import LoadThresholds
from planner.ai.llm import LocalLLM


@dataclass
class ServiceContext:
    store: FirebaseStore
    gateway: ClickUpGateway
    llm: LocalLLM
    thresholds: LoadThresholds
    banner_seconds: float = 4.0

    @classmethod
    def from_settings(cls, settings) -> ServiceContext:
        store = FirebaseStore(
            settings.FIREBASE_DATABASE_URL,
            api_key=settings.FIREBASE_API_KEY,
            email=settings.FIREBASE_EMAIL,
            password=settings.FIREBASE_PASSWORD,
            database_secret=settings.FIREBASE_DATABASE_SECRET,
        )
        gateway = ClickUpGateway(
            settings.CLICKUP_API_TOKEN,
            store,
            base_url=settings.CLICKUP_API_URL,
            team_id=settings.CLICKUP_TEAM_ID,
            default_list_id=settings.CLICKUP_LIST_ID,
            timeout=settings.CLICKUP_TIMEOUT,
        )
        llm = LocalLLM(
            settings.LLM_MODEL_PATH,
            n_ctx=settings.LLM_N_CTX,
            n_threads=settings.LLM_N_THREADS,
        )
        return cls(
            store=store,
            gateway=gateway,
            llm=llm,
            thresholds=LoadThresholds(under=settings.AGENDA_UNDER_HOURS, over=settings.AGENDA_OVER_HOURS),
            banner_seconds=settings.AGENDA_BANNER_SECONDS,
        )

    async def build_planner(self) -> AgendaPlanner:
        """A planner over the stored sprint calendar and team directory."""
        config = await self.store.load_sprint_config()
        members = await self.store.load_team_members()
        return AgendaPlanner(
            self.gateway,
            list(config.sprints.values()),
            list(members.values()),
            thresholds=self.thresholds,
            banner_seconds=self.banner_seconds,
        )


def get_context() -> ServiceContext:
    """The context built by the planner app at startup."""
    return apps.get_app_config("planner").context
