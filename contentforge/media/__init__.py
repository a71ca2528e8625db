from contentforge.media.storage import MediaStorage, get_media_storage

__all__ = ["MediaStorage", "get_media_storage"]
