"""Renderers for reverse-proxy configs, domain maps and deploy scripts."""
from homestack.render.domains import render_domains
from homestack.render.proxy import ProxyConfigFragment, ProxyRenderer
from homestack.render.scripts import DeployScriptGenerator

__all__ = ['DeployScriptGenerator', 'ProxyConfigFragment', 'ProxyRenderer', 'render_domains']
