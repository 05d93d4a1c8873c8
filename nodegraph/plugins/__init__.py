"""Plugin channel, RPC runtimes and renderer protocol."""

from nodegraph.plugins.channel import ChannelEndpoint, Envelope, create_channel_pair
from nodegraph.plugins.correlation import PendingCall, PendingCallTable
from nodegraph.plugins.gateway import HostGateway
from nodegraph.plugins.host_session import PluginSession
from nodegraph.plugins.manifest import PluginBundle, PluginManifest
from nodegraph.plugins.registry import MethodRegistry
from nodegraph.plugins.renderer import NodeRenderer, RenderControls, RendererHost, RendererState
from nodegraph.plugins.runtime import PluginRuntime

__all__ = [
    "ChannelEndpoint",
    "Envelope",
    "create_channel_pair",
    "PendingCall",
    "PendingCallTable",
    "HostGateway",
    "PluginSession",
    "PluginBundle",
    "PluginManifest",
    "MethodRegistry",
    "NodeRenderer",
    "RenderControls",
    "RendererHost",
    "RendererState",
    "PluginRuntime",
]
