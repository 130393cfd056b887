"""
Routing package for the Proxy service.

Turns an inbound path into a resolved tenant mapping and works out the
public origin the browser used to reach the proxy.
"""
