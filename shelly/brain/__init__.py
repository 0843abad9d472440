"""Messages API types, request builder and inference client."""