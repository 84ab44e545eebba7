"""Wiring of the generation services shared by the API, workers and CLI."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from mediaforge.core.config import Settings
from mediaforge.services.generation.dispatcher import GenerationDispatcher
from mediaforge.services.generation.fanout import MediaFanout
from mediaforge.services.generation.notifier import PostMediaNotifier
from mediaforge.services.generation.queue import DispatchQueue
from mediaforge.services.generation.reconciler import CompletionReconciler
from mediaforge.services.providers import ProviderAdapter, build_adapters
from mediaforge.services.ratelimit import InMemoryTTLStore, RateLimiter
from mediaforge.uow import UnitOfWork


@dataclass
class AppServices:
    settings: Settings
    uow_factory: Callable[[], Awaitable[UnitOfWork]]
    adapters: dict[str, ProviderAdapter]
    queue: DispatchQueue | None
    notifier: PostMediaNotifier
    reconciler: CompletionReconciler
    dispatcher: GenerationDispatcher
    fanout: MediaFanout
    rate_limiter: RateLimiter


def build_services(
    settings: Settings,
    uow_factory: Callable[[], Awaitable[UnitOfWork]],
    adapters: dict[str, ProviderAdapter] | None = None,
    queue: DispatchQueue | None = None,
) -> AppServices:
    """Build the service graph.

    Args:
        settings: Application settings
        uow_factory: UnitOfWork factory
        adapters: Provider adapters by name (default: real Kie.ai and Replicate clients)
        queue: Dispatch queue; None means jobs are dispatched explicitly by the caller
    """
    if adapters is None:
        adapters = build_adapters(settings)

    notifier = PostMediaNotifier(uow_factory)
    reconciler = CompletionReconciler(uow_factory, notifier)
    dispatcher = GenerationDispatcher(uow_factory, settings, adapters, reconciler, queue)
    fanout = MediaFanout(uow_factory, settings, dispatcher)
    rate_limiter = RateLimiter(
        InMemoryTTLStore(),
        limit=settings.generation_rate_limit,
        window_seconds=settings.generation_rate_window_seconds,
    )

    return AppServices(
        settings=settings,
        uow_factory=uow_factory,
        adapters=adapters,
        queue=queue,
        notifier=notifier,
        reconciler=reconciler,
        dispatcher=dispatcher,
        fanout=fanout,
        rate_limiter=rate_limiter,
    )
