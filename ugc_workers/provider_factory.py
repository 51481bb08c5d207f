from .config import PollPolicy, VideoProvider
from .kling import KlingVideoService
from .luma import LumaVideoService
from .piapi import PiAPIClient
from .video_generation import VideoGenerationService


class ProviderFactory:
    SERVICES = {
        VideoProvider.KLING: KlingVideoService,
        VideoProvider.LUMA: LumaVideoService,
    }

    @staticmethod
    def get_video_service(
        provider: VideoProvider,
        client: PiAPIClient,
        store,
        poll: PollPolicy,
        storage_hosts=(),
    ) -> VideoGenerationService:
        # The provider comes from the run's own config, never from process state
        service_cls = ProviderFactory.SERVICES.get(VideoProvider(provider))
        if service_cls is None:
            raise ValueError(f"Unknown video provider: {provider}")
        return service_cls(client, store, poll, storage_hosts=storage_hosts)
