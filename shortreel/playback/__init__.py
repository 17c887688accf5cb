"""
Client-side playback support for shortreel.

Progressive preloading of upcoming videos and coordination with the
background byte cache worker. Everything here runs on a single asyncio loop,
except the cache worker which owns its own thread.
"""
