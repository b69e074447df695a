"""HTML returned to popup windows opened by the chat client."""

CONNECTED_PAGE = """
<!DOCTYPE html>
<html>
    <head>
        <script>
            window.close();
        </script>
    </head>
    <body>
        <p>Completed connecting to Google Calendar. Please close this window.</p>
    </body>
</html>
"""

CLOSE_WINDOW_PAGE = """
<!DOCTYPE html>
<html>
    <head>
        <script>
            window.close();
        </script>
    </head>
</html>
"""
