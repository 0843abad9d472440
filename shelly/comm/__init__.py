"""UDP communication with clients: message types, packet codec and server."""