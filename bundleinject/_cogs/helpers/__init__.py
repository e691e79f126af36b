"""
Helpers with no knowledge of ConfigMaps, bundles, or controllers:
the types and the version of the package.
"""
