# HEARTH v1.0
from rich.console import Console
from rich.panel import Panel

console = Console()


def show_success(message):
    '''Show success message in green'''
    console.print(f"  ✅ {message}", style="bold green")

def show_error(message):
    '''Show error message in red'''
    console.print(f"  ❌ {message}", style="bold red")

def show_info(message):
    '''Show info message in blue'''
    console.print(f"  ℹ️  {message}", style="bold blue")

def show_result_panel(content, title="Success", style="green"):
    '''Show result info in a styled panel'''
    panel = Panel(
        content,
        title=f"[bold {style}]{title}[/bold {style}]",
        border_style=style,
        padding=(1, 2)
    )
    console.print()
    console.print(panel)
