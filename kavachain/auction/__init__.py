"""Forward, reverse and forward-reverse auctions with a keeper, bid message and module."""