"""
Kube Module - Black Box Interface

Purpose: Kubernetes client configuration and API server tunnel credentials
Interface: KubeModule.load(), core_api, apps_api, tunnel_credentials(), call_kube()
Hidden: kubeconfig source precedence, TLS material, token refresh

Loaded once at process start; everything else reuses the same clients.
"""

from .kube import KubeModule, TunnelCredentials, call_kube

__all__ = ["KubeModule", "TunnelCredentials", "call_kube"]
