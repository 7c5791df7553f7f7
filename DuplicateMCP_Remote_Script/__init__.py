# DuplicateMCP_Remote_Script/__init__.py


def create_instance(c_instance):
    """Create and return the AbletonMCP Duplicate script instance"""
    # Imported here so the bridge module can be used outside Live
    from .control_surface import AbletonMCPDuplicate

    return AbletonMCPDuplicate(c_instance)
