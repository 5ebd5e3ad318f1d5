import subprocess

def check_graphviz_installed():
    try:
        subprocess.run(["dot", "-V"], check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False

def format_weight(num: float, show: bool) -> str:
    """'/w' suffix for node and edge labels, or nothing when weights are hidden."""
    if not show:
        return ""
    s = '{0:.2f}'.format(num).rstrip('0').rstrip('.')
    s = '0' if s == '-0' else s
    return "/" + s
