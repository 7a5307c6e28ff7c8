from scroll_video.render.animation import AnimationParams
from scroll_video.render.cutout_detector import CutoutRect, FrameImage, detect_transparent_cutout
from scroll_video.render.frame_synthesizer import FrameSynthesizer
from scroll_video.render.pipeline import ScrollRenderPipeline
from scroll_video.render.video_encoder import VideoEncoder

__all__ = [
    "ScrollRenderPipeline",
    "FrameSynthesizer",
    "VideoEncoder",
    "AnimationParams",
    "CutoutRect",
    "FrameImage",
    "detect_transparent_cutout",
]
